"""
a library for building, validating, and serializing BagIt bags.

The BagBuilder class assembles a bag in a directory, computing the checksums
of its content as it is written; its build() method returns a Bag, which
answers questions about the bag's metadata and manifests and reports whether
the bag is complete and valid.  The serde module converts bags to and from
zip, tar, and gzip-compressed tar packages and streams.
"""
from .constants import (VERSION, EolRule, MetadataName, STATUS_OK,
                        STATUS_INCOMPLETE, STATUS_INVALID)
from .builder import BagBuilder
from .access.bagit import Bag, BagError, BagValidationError
from .access.exceptions import (ConfigurationError, DuplicateEntryError,
                                InvalidPathError, InvalidReferenceError,
                                AccessDeniedError, UnsupportedFormatError,
                                NotFoundError, BagBuiltError)
from .validate import BagValidator, BagPackValidationError
from .serde import (from_directory, from_package, from_stream, to_package,
                    to_stream)

__version__ = VERSION
