"""Command-line conversion of a folder of CT images to an egsphant phantom."""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from . import geo
from .egsphant import default_egsphant_path, with_egsphant_suffix, write_egsphant
from .exceptions import PhantomError
from .load_dicom import DEFAULT_CT_NUMBER_OFFSET, MANIFEST_NAME, load_ct_images, write_file_list
from .logging import setup_log
from .ramp import HUClassifier
from .structures import StructureSet
from .utils import load_json
from .vol import Phantom

log = logging.getLogger(__name__)


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="ctphantom",
        description="Convert a folder of CT DICOM images to an EGSnrc egsphant phantom.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
            Examples:

            # Whole CT volume
            python -m ctphantom /data/patient01 -o patient01.egsphant

            # Cropped to a structure from the RT structure set
            python -m ctphantom /data/patient01 --structures /data/patient01/RS.dcm --crop-structure BODY

            # Cropped to a box, in mm
            python -m ctphantom /data/patient01 --bbox -100 -100 0 100 100 50
        """,
    )

    parser.add_argument("ct_dir", help="Directory containing the CT images")
    parser.add_argument(
        "--output",
        "-o",
        help="Output egsphant file. The .egsphant suffix is added if missing. "
        "(default: <case dir>/<ct dir name>.egsphant)",
    )
    parser.add_argument(
        "--pattern",
        default="CT*.dcm",
        help="Glob for the CT image files (default: CT*.dcm)",
    )
    parser.add_argument("--structures", help="RT structure set file (RS*.dcm)")

    crop = parser.add_mutually_exclusive_group()
    crop.add_argument(
        "--crop-structure",
        metavar="NAME",
        help="Crop the phantom to the bounding box of this structure. Needs --structures.",
    )
    crop.add_argument(
        "--bbox",
        nargs=6,
        type=float,
        metavar=("X0", "Y0", "Z0", "X1", "Y1", "Z1"),
        help="Crop the phantom to this box, in mm",
    )

    parser.add_argument(
        "--ramp",
        help="JSON file with a custom ramp, as written by HUClassifier.get_config()",
    )
    parser.add_argument(
        "--ct-number-offset",
        type=int,
        default=DEFAULT_CT_NUMBER_OFFSET,
        help=f"Added to the rescaled pixel values (default: {DEFAULT_CT_NUMBER_OFFSET})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of threads classifying slices",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail on any pixel outside the ramp instead of leaving it unclassified",
    )
    parser.add_argument(
        "--list-structures",
        action="store_true",
        help="Print the structure names in --structures and exit",
    )
    parser.add_argument(
        "--manifest",
        action="store_true",
        help=f"Also write the list of CT files, {MANIFEST_NAME}, next to the output",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    args = parser.parse_args(argv)
    if (args.crop_structure or args.list_structures) and args.structures is None:
        parser.error("--crop-structure and --list-structures need --structures")
    return args


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_arguments(argv)
    setup_log(logging.DEBUG if args.verbose else logging.INFO)

    ct_dir = Path(args.ct_dir)
    try:
        structures = None
        if args.structures is not None:
            structures = StructureSet.from_dicom(args.structures)

        if args.list_structures:
            for name in structures.names():
                print(name)
            return 0

        if args.ramp is not None:
            classifier = HUClassifier.from_config(load_json(args.ramp))
        else:
            classifier = HUClassifier.default()

        images = load_ct_images(ct_dir, pattern=args.pattern, ct_number_offset=args.ct_number_offset)
        phantom = Phantom.from_ct_images(
            images,
            classifier,
            strict=args.strict,
            max_workers=args.workers,
            progress=True,
        )

        if args.crop_structure is not None:
            phantom = phantom.resize_to_structure(args.crop_structure, structures.bounding_boxes())
        elif args.bbox is not None:
            bbox = geo.BoundingBox.from_corners(args.bbox[:3], args.bbox[3:])
            phantom = phantom.resize(bbox)

        log.info(str(phantom))
        log.info(f"{phantom.count_classified_voxels()} voxels have a material")

        if args.output is not None:
            output = with_egsphant_suffix(args.output)
        else:
            output = default_egsphant_path(ct_dir.resolve().name)
        write_egsphant(phantom, output, classifier.material_table, progress=True)

        if args.manifest:
            kept = {s.z for s in phantom}
            write_file_list(
                [img for img in images if img.position.z in kept],
                output.parent / MANIFEST_NAME,
            )
    except (PhantomError, OSError, ValueError) as e:
        log.error(f"conversion failed: {e}")
        return 1

    return 0
