"""
exceptions that can be raised while building, accessing or serializing a bag
"""
from bagit import BagError

class ConfigurationError(BagError):
    """
    an exception indicating that a bag builder was configured with unusable
    settings (e.g. an empty or unrecognized set of checksum algorithms).
    """
    pass

class DuplicateEntryError(BagError):
    """
    an exception indicating an attempt to add a payload or tag file at a
    path that is already occupied
    """
    def __init__(self, relpath, message=None):
        """
        initialize the exception with the name of the occupied path
        :param str relpath:  the occupied path, relative to the bag's root
                             directory
        :param str message:  the exception's message, overriding the default
                             (generated from the path)
        """
        self.path = relpath
        if not message:
            message = "File already exists in bag: " + relpath
        super(DuplicateEntryError, self).__init__(message)

class InvalidPathError(BagError):
    """
    an exception indicating that a path is not allowed for the requested
    purpose (e.g. a tag file placed under the payload directory).
    """
    pass

class InvalidReferenceError(BagError):
    """
    an exception indicating an unusable fetch reference
    """
    pass

class AccessDeniedError(BagError):
    """
    an exception indicating an attempt to get at the filesystem location of
    a file inside an opaque bag
    """
    pass

class UnsupportedFormatError(BagError):
    """
    an exception indicating that an archive format is not recognized or that
    a file's signature does not match its claimed format
    """
    pass

class NotFoundError(BagError):
    """
    an exception indicating that a bag directory or package file does not
    exist
    """
    pass

class BagBuiltError(BagError):
    """
    an exception indicating an attempt to add content to a bag that has
    already been built.
    """
    pass
