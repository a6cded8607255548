#!/usr/bin/env python3
"""
Calibration utility for vehicle speed measurement.
"""

import sys
import argparse
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from roadspeed.calibration.calibration import (
    LENGTH_PRESETS, CalibrationSession, save_calibration
)
from roadspeed.core.exceptions import CalibrationInputError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Calibration for vehicle speed measurement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Line calibration along a 10 ft lane dash
  python scripts/calibrate_camera.py --line 100 400 100 250 --length 10 --output line_cal.json

  # Area calibration from four lane corners, lane width preset in metres
  python scripts/calibrate_camera.py --area 100 400 300 400 260 200 140 200 \\
      --preset lane_width --units m --output area_cal.json
        """
    )

    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        '--line',
        nargs=4,
        type=float,
        metavar=('X1', 'Y1', 'X2', 'Y2'),
        help='Reference segment endpoints in pixels'
    )
    mode.add_argument(
        '--area',
        nargs=8,
        type=float,
        metavar='COORD',
        help='Four corners (near-left, near-right, far-right, far-left) as x y pairs'
    )

    length = parser.add_mutually_exclusive_group()
    length.add_argument(
        '--length',
        type=float,
        help='Real length of the reference'
    )
    length.add_argument(
        '--preset',
        choices=sorted(LENGTH_PRESETS),
        help='Use a preset reference length'
    )

    parser.add_argument(
        '--units',
        choices=['ft', 'm'],
        default='ft',
        help='Units of the real length (default: ft)'
    )

    parser.add_argument(
        '--output',
        required=True,
        help='Output calibration file path'
    )

    return parser


def main(argv=None) -> int:
    """Main calibration function"""
    args = build_parser().parse_args(argv)

    session = CalibrationSession()

    try:
        if args.line:
            session.start_line(args.length, args.units)
            if args.preset:
                session.apply_preset(args.preset)
            x1, y1, x2, y2 = args.line
            session.pointer_down(x1, y1)
            calibration = session.pointer_up(x2, y2)
        else:
            session.start_area(args.length, args.units)
            if args.preset:
                session.apply_preset(args.preset)
            coords = args.area
            calibration = None
            for i in range(0, 8, 2):
                calibration = session.add_point(coords[i], coords[i + 1])
    except CalibrationInputError as e:
        print(f"Error: {e}")
        return 1

    save_calibration(calibration, args.output)

    print(f"Calibration saved to: {args.output}")
    print(f"Mode: {calibration.mode}  Quality: {calibration.quality:.2f} ({calibration.quality_label})")
    if calibration.scale is not None:
        print(f"Scale: {calibration.scale:.5f} m/px")

    return 0


if __name__ == "__main__":
    sys.exit(main())
