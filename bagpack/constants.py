"""
Common data about the bags produced and read by this package.
"""
import os, re
from collections import OrderedDict

VERSION = "0.1"
BAGIT_VERSION = "1.0"
SOFTWARE_AGENT = "bagpack v" + VERSION

DEFAULT_ENCODING = "UTF-8"
DEFAULT_CS_ALGORITHM = "sha512"
DEFAULT_FORMAT = "zip"

# fixed file names of the bag layout
DECL_FILE = "bagit.txt"
META_FILE = "bag-info.txt"
REF_FILE = "fetch.txt"
MANIF_FILE = "manifest-"
TAGMANIF_FILE = "tagmanifest-"
DATA_DIR = "data"
DATA_PATH = DATA_DIR + "/"

_manifest_re = re.compile(r"^(tag)?manifest-[^/]+\.txt$")

def is_reserved_tag(relpath):
    """
    return True if the given bag-relative path names one of the tag files
    whose content is generated while the bag is built (the declaration, the
    metadata and fetch files, and the manifests)
    """
    return relpath in (DECL_FILE, META_FILE, REF_FILE) or \
           bool(_manifest_re.match(relpath))

FOLD_WIDTH = 80
SPACER = " "

# integer status codes reported by Bag.complete_status() and
# Bag.validation_status()
STATUS_OK = 0
STATUS_INCOMPLETE = 1
STATUS_INVALID = 2

class EolRule(object):
    """
    the rules for choosing the line terminator written into generated
    tag files
    """
    SYSTEM = "system"
    COUNTER_SYSTEM = "counter_system"
    UNIX = "unix"
    WINDOWS = "windows"
    CLASSIC = "classic"

    ALL = (SYSTEM, COUNTER_SYSTEM, UNIX, WINDOWS, CLASSIC)

def line_separator(rule, sysep=None):
    """
    return the line terminator string for the given EolRule value.

    :param str rule:   one of the EolRule values
    :param str sysep:  the host's line separator (default: os.linesep)
    :return: the terminator, or None if the rule is not recognized
    """
    if sysep is None:
        sysep = os.linesep
    if rule == EolRule.SYSTEM:
        return sysep
    if rule == EolRule.UNIX:
        return "\n"
    if rule == EolRule.WINDOWS:
        return "\r\n"
    if rule == EolRule.CLASSIC:
        return "\r"
    if rule == EolRule.COUNTER_SYSTEM:
        return (sysep == "\n" and "\r\n") or "\n"
    return None

class MetadataName(object):
    """
    the reserved metadata names of the BagIt specification
    """
    SOURCE_ORG = "Source-Organization"
    ORG_ADDR = "Organization-Address"
    CONTACT_NAME = "Contact-Name"
    CONTACT_PHONE = "Contact-Phone"
    CONTACT_EMAIL = "Contact-Email"
    EXTERNAL_DESC = "External-Description"
    EXTERNAL_ID = "External-Identifier"
    BAGGING_DATE = "Bagging-Date"
    BAG_SIZE = "Bag-Size"
    PAYLOAD_OXUM = "Payload-Oxum"
    BAG_GROUP_ID = "Bag-Group-Identifier"
    BAG_COUNT = "Bag-Count"
    INTERNAL_SENDER_ID = "Internal-Sender-Identifier"
    INTERNAL_SENDER_DESC = "Internal-Sender-Description"
    BAG_SOFTWARE_AGENT = "Bag-Software-Agent"

# the metadata that can be computed at build time, in the order written
AUTOGEN_NAMES = (MetadataName.BAGGING_DATE, MetadataName.BAG_SIZE,
                 MetadataName.PAYLOAD_OXUM, MetadataName.BAG_SOFTWARE_AGENT)

# canonical checksum code -> display name
CHECKSUM_ALGORITHMS = OrderedDict([
    ("md5",    "MD5"),
    ("sha1",   "SHA-1"),
    ("sha224", "SHA-224"),
    ("sha256", "SHA-256"),
    ("sha384", "SHA-384"),
    ("sha512", "SHA-512")
])

# archive formats:  file suffix -> format
SUFFIX_FORMATS = {
    "zip": "zip",
    "tar": "tar",
    "tgz": "tgz",
    "gz":  "tgz"
}

# format -> (offset, magic bytes)
FORMAT_SIGNATURES = {
    "zip": (0, b"\x50\x4b"),
    "tgz": (0, b"\x1f\x8b"),
    "tar": (257, b"ustar")
}

ARCHIVE_FORMATS = tuple(sorted(FORMAT_SIGNATURES.keys()))
