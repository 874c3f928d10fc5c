"""Command-line interface for FlatCapture perspective correction."""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import click
from dotenv import load_dotenv

from flatcapture.errors import CorrectionError
from flatcapture.geometry.orientation import Orientation, apply_orientation
from flatcapture.geometry.primitives import Size
from flatcapture.page_detection.detector import ContourQuadDetector
from flatcapture.page_detection.selector import SelectionPolicy
from flatcapture.pipeline import CorrectionConfig, PerspectiveCorrector, describe_outcome
from flatcapture.preprocessing.loader import SUPPORTED_EXTENSIONS, load_image
from flatcapture.preprocessing.raster import RasterImage
from flatcapture.utils.output import DEFAULT_JPEG_QUALITY, draw_quadrilateral, save_image

# Load environment variables from .env
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%H:%M:%S'
)

logger = logging.getLogger(__name__)


def _collect_inputs(input_paths: tuple) -> List[Path]:
    input_files: List[Path] = []

    for input_path_str in input_paths:
        input_path = Path(input_path_str)

        if input_path.is_file():
            input_files.append(input_path)
        elif input_path.is_dir():
            input_files.extend(sorted(
                p for p in input_path.iterdir()
                if p.is_file() and p.suffix.lower() in SUPPORTED_EXTENSIONS
            ))
        else:
            logger.error(f"Invalid input path: {input_path}")
            sys.exit(1)

    return input_files


@click.group()
@click.version_option(version='0.1.0')
def main() -> None:
    """FlatCapture - Flatten photographed documents into straight-on scans."""
    pass


@main.command()
@click.argument('input_paths', nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    '--output',
    '-o',
    'output_dir',
    type=click.Path(),
    default='./output',
    help='Output directory for corrected images'
)
@click.option(
    '--policy',
    type=click.Choice([p.value for p in SelectionPolicy]),
    default=None,
    help='Candidate selection policy (default: from environment, else strict)'
)
@click.option(
    '--no-fallback',
    is_flag=True,
    help='Pass images through unchanged when no document is detected'
)
@click.option(
    '--orientation',
    type=click.Choice([o.name.lower() for o in Orientation]),
    default=None,
    help='Override the EXIF orientation of every input'
)
@click.option(
    '--debug',
    is_flag=True,
    help='Save detection overlays next to the outputs'
)
@click.option(
    '--verbose',
    '-v',
    is_flag=True,
    help='Enable verbose logging'
)
def correct(
    input_paths: tuple,
    output_dir: str,
    policy: Optional[str],
    no_fallback: bool,
    orientation: Optional[str],
    debug: bool,
    verbose: bool
) -> None:
    """Correct the perspective of captured documents.

    INPUT_PATHS: One or more image files or directories to process
    """
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = CorrectionConfig.from_env()
    except ValueError as e:
        raise click.BadParameter(f"Invalid FLATCAPTURE_* environment setting: {e}")

    if policy == SelectionPolicy.BEST_BY_AREA.value:
        config = replace(
            config,
            selection_policy=SelectionPolicy.BEST_BY_AREA,
            max_observations=max(config.max_observations, 8),
        )
    elif policy == SelectionPolicy.STRICT.value:
        config = replace(config, selection_policy=SelectionPolicy.STRICT)
    if no_fallback:
        config = replace(config, fallback_enabled=False)

    input_files = _collect_inputs(input_paths)
    if not input_files:
        logger.error("No input files found")
        sys.exit(1)

    logger.info(f"Processing {len(input_files)} file(s)")

    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    corrector = PerspectiveCorrector(config=config)

    saved = 0
    for input_file in input_files:
        try:
            logger.info(f"\n{'=' * 60}")
            logger.info(f"Processing: {input_file.name}")
            logger.info(f"{'=' * 60}")

            image, metadata = load_image(str(input_file))
            capture_orientation = Orientation.resolve(orientation) if orientation else metadata.orientation

            outcome = corrector.correct(image, capture_orientation)

            result = save_image(
                outcome.output_image,
                output_path / f"FlatCapture_{input_file.stem}.jpg",
                quality=DEFAULT_JPEG_QUALITY,
            )
            if not result.success:
                logger.error(f"Could not save {result.path.name}: {result.error.message}")
                continue

            saved += 1
            logger.info(f"Saved: {result.path.name}")

            if debug:
                _save_detection_overlay(corrector, image, capture_orientation, output_path / f"debug_{input_file.stem}.jpg")

            logger.info(f"\nProcessing Summary:")
            logger.info(f"  Status: {describe_outcome(outcome)}")
            logger.info(f"  Format: {metadata.format}")
            logger.info(f"  Orientation: {capture_orientation.name}")
            logger.info(f"  Input size: {image.width}x{image.height}")
            logger.info(f"  Output size: {outcome.output_image.width}x{outcome.output_image.height}")
            if outcome.confidence is not None:
                logger.info(f"  Confidence: {outcome.confidence:.3f}")
            logger.info(f"  Processing time: {outcome.elapsed_time_ms:.1f}ms")

        except (OSError, ValueError, CorrectionError) as e:
            logger.error(f"Error processing {input_file}: {e}", exc_info=verbose)
            continue

    logger.info(f"\n{'=' * 60}")
    logger.info(f"COMPLETE: Saved {saved}/{len(input_files)} file(s)")
    logger.info(f"Output directory: {output_path.absolute()}")
    logger.info(f"{'=' * 60}")


def _save_detection_overlay(
    corrector: PerspectiveCorrector,
    image: RasterImage,
    orientation: Orientation,
    path: Path,
) -> None:
    """Save the upright input with every detector candidate outlined."""
    oriented = apply_orientation(image, orientation)
    candidates = corrector.detector.detect(oriented, corrector.config.detector_config())
    overlay = oriented
    extent = Size(oriented.width, oriented.height)
    for i, candidate in enumerate(candidates, 1):
        overlay = draw_quadrilateral(
            overlay,
            candidate.quad.scaled(extent),
            label=f"#{i} conf:{candidate.confidence:.2f}",
        )
    save_image(overlay, path)


@main.command()
@click.argument('input_path', type=click.Path(exists=True, dir_okay=False))
@click.option('--max-observations', type=int, default=8, help='Maximum candidates to report')
def detect(input_path: str, max_observations: int) -> None:
    """List document candidates found in an image.

    INPUT_PATH: Image file to inspect
    """
    image, metadata = load_image(input_path)
    oriented = apply_orientation(image, metadata.orientation)

    config = CorrectionConfig.best_by_area(max_observations=max_observations)
    try:
        candidates = ContourQuadDetector().detect(oriented, config.detector_config())
    except CorrectionError as e:
        raise click.ClickException(str(e))

    click.echo(f"{Path(input_path).name}: {len(candidates)} candidate(s)")
    for i, candidate in enumerate(candidates, 1):
        corners = ", ".join(
            f"({p.x:.3f}, {p.y:.3f})"
            for p in (
                candidate.quad.top_left,
                candidate.quad.top_right,
                candidate.quad.bottom_left,
                candidate.quad.bottom_right,
            )
        )
        click.echo(
            f"  #{i} confidence={candidate.confidence:.3f} "
            f"area={candidate.bounding_box_area:.3f} corners=[{corners}]"
        )


if __name__ == '__main__':
    main()
