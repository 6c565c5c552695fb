#!/usr/bin/env python3
"""
Geometry calibration tool for Apparel Studio.

Checks that the production overlay slots land where the canvas renderer
draws each placement, writes the comparison as CSV and renders guide sheets
for a visual check against the base garment images.
"""

import argparse
import sys
from pathlib import Path

from PIL import Image
from loguru import logger

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from apparel_studio.calibration import check_overlay_alignment, render_calibration_sheet, write_alignment_csv
from apparel_studio.config import load_config, load_design_config
from apparel_studio.geometry import GeometryResolver
from apparel_studio.production_preview import CloudinarySettings, ProductionPreviewGenerator


def main():
    """Main entry point for calibration tools."""
    parser = argparse.ArgumentParser(
        description="Placement geometry calibration for Apparel Studio",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python tools/calibration.py --output calibration_results
  python tools/calibration.py --tolerance 0.5 --sheet-width 600
        """
    )

    parser.add_argument('--design-config', type=Path, default=Path('config/geometry.yaml'),
                        help='Geometry/overlay config file')
    parser.add_argument('--output', type=Path, default=Path('calibration_results'),
                        help='Output directory for the CSV and guide sheets')
    parser.add_argument('--tolerance', type=float, default=1.0,
                        help='Maximum allowed drift in production pixels')
    parser.add_argument('--sheet-width', type=int, default=None,
                        help='Guide sheet width (defaults to the production width)')

    args = parser.parse_args()

    config = load_config()
    design = load_design_config(str(args.design_config))
    resolver = GeometryResolver(design.geometry)
    generator = ProductionPreviewGenerator(
        CloudinarySettings.from_config(config),
        resolver,
        design.overlay_slots,
        design.garments,
        design.fonts,
        base_width=config.PRODUCTION_PREVIEW_WIDTH,
    )

    results = check_overlay_alignment(resolver, generator)
    csv_path = write_alignment_csv(results, args.output / 'alignment.csv')
    print(f"📊 Alignment results written: {csv_path}")

    drifting = [r for r in results if not r.within(args.tolerance)]
    for result in drifting:
        print(f"❌ {result.area}/{result.vertical_position}/{result.text_box_width}: "
              f"centre Δ{result.center_delta:.2f}px, width Δ{result.width_delta:.2f}px")

    sheet_width = args.sheet_width or config.PRODUCTION_PREVIEW_WIDTH
    assets = Path(config.ASSETS_DIRECTORY)
    for color, images in design.garments.colors.items():
        base_path = assets / (images.front or images.fallback)
        base = None
        if base_path.exists():
            base = Image.open(base_path)
        else:
            logger.warning(f"Base garment not found for sheet: {base_path}")
        sheet = render_calibration_sheet(resolver, sheet_width, dark=color == 'black', base_image=base)
        sheet_path = args.output / f"sheet_{color}.png"
        sheet.save(sheet_path)
        print(f"🖼️  Guide sheet written: {sheet_path}")

    if drifting:
        print(f"\n{len(drifting)} of {len(results)} combinations exceed {args.tolerance}px")
        sys.exit(1)

    print(f"\n✅ All {len(results)} combinations within {args.tolerance}px")


if __name__ == '__main__':
    main()
