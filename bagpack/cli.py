"""
The bagger command-line tool:  fill a new bag from local files, or report on
the completeness or validity of an existing bag.

    bagger fill BAGPATH [-p [relpath=]file]... [-t [relpath=]file]...
                        [-r relpath=file=uri]... [-m name=value]...
                        [-b basisbag] [-a directory|zip|tar|tgz] [-n]
                        [-c alg]... [-e encoding] [-o nag] [-v level]
    bagger complete BAGPATH [-v level]
    bagger validate BAGPATH [-v level]

The complete and validate commands exit with the bag's status code (0: ok,
1: incomplete, 2: invalid).  At a verbosity of 2 or more, each failed test is
described along with the files it found at fault.
"""
import os, sys, argparse, logging

from bagit import BagError

from .constants import DEFAULT_CS_ALGORITHM, DEFAULT_ENCODING, STATUS_OK
from .builder import BagBuilder
from . import serde

prog = "bagger"
description = "build or check BagIt bags"

# exit code for failures to carry out a command
EXIT_FAILURE = 3

DIRECTORY = "directory"
NO_AUTOGEN = "nag"

def define_options(progname=prog):
    """
    return an ArgumentParser for the bagger command
    """
    parser = argparse.ArgumentParser(progname, description=description)
    parser.add_argument("command", choices=["fill", "complete", "validate"],
                        help="the operation to carry out")
    parser.add_argument("bagpath", metavar="BAGPATH",
                        help="the path to the bag's root directory")
    parser.add_argument("-p", "--payload", action="append", default=[],
                        metavar="[RELPATH=]FILE",
                        help="add FILE to the payload (at RELPATH, if given)")
    parser.add_argument("-r", "--reference", action="append", default=[],
                        metavar="RELPATH=FILE=URI",
                        help="add FILE as payload fetched from URI")
    parser.add_argument("-t", "--tag", action="append", default=[],
                        metavar="[RELPATH=]FILE",
                        help="add FILE as a tag file (at RELPATH, if given)")
    parser.add_argument("-m", "--metadata", action="append", default=[],
                        metavar="NAME=VALUE",
                        help="add a metadata property to bag-info.txt")
    parser.add_argument("-b", "--basis", metavar="BAGDIR",
                        help="a bag to seed the new bag's contents from")
    parser.add_argument("-a", "--archive", default=DIRECTORY,
                        choices=[DIRECTORY, "zip", "tar", "tgz"],
                        help="the serialization of the filled bag "
                             "(default: a loose directory)")
    parser.add_argument("-n", "--no-time", action="store_true",
                        help="zero the timestamps of the archive entries")
    parser.add_argument("-c", "--checksum", action="append", default=[],
                        metavar="ALG", dest="algorithms",
                        help="a checksum algorithm to use (default: " +
                             DEFAULT_CS_ALGORITHM + ")")
    parser.add_argument("-e", "--encoding", default=None,
                        help="the tag file encoding (default: " +
                             DEFAULT_ENCODING + ")")
    parser.add_argument("-o", "--optimize", action="append", default=[],
                        metavar="FLAG",
                        help="an optimization flag; 'nag' suppresses the "
                             "automatic metadata")
    parser.add_argument("-v", "--verbosity", type=int, default=0,
                        metavar="LEVEL",
                        help="output level (default: 0, no output)")
    return parser

def _split_pair(item):
    if "=" in item:
        return item.split("=", 1)
    return os.path.basename(item), item

def fill(args, log):
    """
    create the bag requested by the parsed arguments
    """
    bagdir = os.path.abspath(args.bagpath)
    if args.basis:
        builder = BagBuilder.from_bag(bagdir, args.basis, args.algorithms,
                                      args.encoding, logger=log)
    else:
        builder = BagBuilder(bagdir, args.encoding or DEFAULT_ENCODING,
                             algorithms=args.algorithms or [DEFAULT_CS_ALGORITHM],
                             logger=log)
    if NO_AUTOGEN in args.optimize:
        builder.auto_generate([])

    for item in args.payload:
        relpath, path = _split_pair(item)
        builder.payload(relpath, path)
    for item in args.reference:
        parts = item.split("=", 2)
        if len(parts) < 3:
            raise BagError("Reference must have the form RELPATH=FILE=URI: " +
                           item)
        builder.payload_ref(parts[0], parts[1], parts[2])
    for item in args.tag:
        relpath, path = _split_pair(item)
        builder.tag(relpath, path)
    for item in args.metadata:
        if "=" not in item:
            raise BagError("Metadata must have the form NAME=VALUE: " + item)
        name, value = item.split("=", 1)
        builder.metadata(name, value)

    outpath = bagdir
    with builder.build() as bag:
        if args.archive != DIRECTORY:
            outpath = serde.to_package(bag, args.archive, args.no_time,
                                       logger=log)
    _message(args, os.path.basename(outpath), True, "created")
    return STATUS_OK

def _check(args, completeness_only, value):
    with serde.from_directory(args.bagpath) as bag:
        results = bag.validation_results(completeness_only)
    status = bag.status(results)
    _message(args, bag.name, status == STATUS_OK, value)
    if args.verbosity > 1:
        for issue in results.failed():
            print(issue.description)
    return status

def complete(args, log):
    return _check(args, True, "complete")

def validate(args, log):
    return _check(args, False, "valid")

def _message(args, name, ok, value):
    if args.verbosity > 0:
        print("Bag '{0}' is {1}{2}".format(name, (not ok and "in") or "", value))

def _log_level(verbosity):
    if verbosity > 1:
        return logging.DEBUG
    if verbosity > 0:
        return logging.INFO
    return logging.WARNING

commands = {
    "fill": fill,
    "complete": complete,
    "validate": validate
}

def main(argv=None):
    """
    run the bagger command with the given arguments (default: sys.argv[1:])
    and exit with its status code
    """
    parser = define_options()
    args = parser.parse_args(argv)
    logging.basicConfig(level=_log_level(args.verbosity),
                        format="%(name)s: %(levelname)s: %(message)s")
    log = logging.getLogger(prog)

    try:
        status = commands[args.command](args, log)
    except (BagError, OSError) as ex:
        log.error(str(ex))
        status = EXIT_FAILURE
    sys.exit(status)

if __name__ == '__main__':
    main()
