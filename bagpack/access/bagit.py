"""
This module provides the read-only accessor for a finished bag.  It extends
the LOC bagit module's Bag class, which parses the declaration, the bag-info
metadata and the manifests, with metadata and manifest lookups, completeness
and validity reporting, and the opaque and ephemeral access modes.
"""
import os
from collections import OrderedDict

import bagit as _bagit
from bagit import BagError, BagValidationError, _decode_filename
import fs.osfs
from fs.errors import ResourceNotFound

from ..constants import (DATA_PATH, META_FILE, SPACER, STATUS_OK,
                         STATUS_INCOMPLETE, STATUS_INVALID, is_reserved_tag)
from ..digest import checksum_code
from ..validate.base import ALL, ERROR
from ..validate.bag import BagValidator, PAYLOAD_COMPLETE, CHECKSUMS
from .exceptions import (AccessDeniedError, NotFoundError, InvalidPathError,
                         ConfigurationError)

def _read_properties(fd):
    """
    iterate through the (name, value) properties in an open tag file.  Folded
    values are rejoined:  a continuation line's leading space is dropped and
    its remaining text appended to the value as is.
    """
    name = None
    value = None
    for line in fd:
        line = line.rstrip("\r\n")
        if not line:
            continue
        if line[0].isspace() and name is not None:
            value += line[len(SPACER):] if line.startswith(SPACER) else line
            continue
        if not line.strip():
            continue
        if name is not None:
            yield name, value
        if ":" not in line:
            raise BagValidationError("invalid tag line in property file: " +
                                     line)
        name, value = line.split(":", 1)
        name = name.strip()
        value = value.lstrip()
    if name is not None:
        yield name, value

class Bag(_bagit.Bag):
    """
    A read-only representation of a finished bag in a directory.

    An *opaque* bag will not reveal the filesystem location of its files:
    the payload_file() and tag_file() methods raise an AccessDeniedError,
    while the stream accessors remain available.  An *ephemeral* bag lives
    in temporary storage and is reclaimed after it has been serialized to a
    stream and that stream has been consumed (see bagpack.serde).
    """

    def __init__(self, bagdir, opaque=False, ephemeral=False):
        """
        open the bag in the given directory

        :param str bagdir:      the path to the bag's root directory
        :param bool opaque:     if True, hide the paths to the bag's files
        :param bool ephemeral:  if True, the bag's storage is reclaimed after
                                its serialized stream is closed
        """
        if not bagdir:
            raise BagError("path to bag root directory not provided")
        bagdir = str(bagdir)
        if not os.path.isdir(bagdir):
            raise NotFoundError("Missing or nonexistent bag directory: "+bagdir)
        self._opaque = bool(opaque)
        self._ephemeral = bool(ephemeral)
        super(Bag, self).__init__(bagdir.rstrip(os.sep) or os.sep)
        self._root = fs.osfs.OSFS(self.path)

    @property
    def name(self):
        """
        the name of the root directory of the bag (without any parent path
        included).
        """
        return os.path.basename(self.path)

    @property
    def opaque(self):
        """
        True if this bag hides the filesystem paths of its contents
        """
        return self._opaque

    @property
    def ephemeral(self):
        """
        True if this bag's storage is reclaimed once its serialized stream
        has been consumed
        """
        return self._ephemeral

    def close(self):
        """
        release the handle on the bag's root directory.  The file accessors
        cannot be used afterward.
        """
        self._root.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __str__(self):
        if self._opaque:
            return "bag:" + self.name
        return self.path

    def isfile(self, path):
        """
        return True if the given path exists as a file below the
        bag's root directory.

        :param str path:  a path to a file relative to the bag's root directory
        """
        if self._path_is_dangerous(path):
            return False
        return self._root.isfile(path)

    def open_bin(self, path):
        """
        open the file with the given path (relative to the bag's root
        directory) for reading and return a binary file object for it.

        :raises NotFoundError:  if the file does not exist
        """
        self._check_relpath(path)
        try:
            return self._root.openbin(path, 'r')
        except ResourceNotFound:
            raise NotFoundError("File not found in bag: " + path)

    def open_text_file(self, path, encoding=None):
        """
        open the file with the given path (relative to the bag's root
        directory) for reading as text, decoded with the bag's tag file
        encoding unless another is given.
        """
        self._check_relpath(path)
        if not encoding:
            encoding = self.encoding
        try:
            return self._root.open(path, 'r', encoding=encoding)
        except ResourceNotFound:
            raise NotFoundError("File not found in bag: " + path)

    def _check_relpath(self, path):
        if not path or self._path_is_dangerous(path):
            raise InvalidPathError("Path is not inside the bag: " + str(path))

    def property(self, relpath, name):
        """
        return the values of a property in a tag file, in the order they
        appear.  An empty list is returned if the file does not exist or
        does not contain the property.

        :param str relpath:  the path to the tag file, relative to the bag's
                             root directory
        :param str name:     the property name
        """
        return [v for n, v in self.properties(relpath) if n == name]

    def properties(self, relpath):
        """
        return all of the (name, value) properties in a tag file as a list in
        the order they appear, with folded values rejoined.
        """
        if not self.isfile(relpath):
            return []
        with self.open_text_file(relpath) as fd:
            return list(_read_properties(fd))

    def metadata(self, name):
        """
        return the values of a metadata property from the bag-info.txt file;
        an empty list is returned for unknown names.
        """
        return self.property(META_FILE, name)

    def _manifest(self, entries, alg):
        try:
            alg = checksum_code(alg)
        except ConfigurationError:
            return OrderedDict()
        return OrderedDict((path.replace(os.sep, '/'), hashes[alg])
                           for path, hashes in entries.items() if alg in hashes)

    def payload_manifest(self, alg):
        """
        return the payload manifest for a checksum algorithm as an OrderedDict
        mapping relative paths (e.g. "data/file.txt") to hex digests.  An
        empty mapping is returned if the bag has no manifest for the algorithm.
        """
        return self._manifest(self.payload_entries(), alg)

    def tag_manifest(self, alg):
        """
        return the tag manifest for a checksum algorithm as an OrderedDict
        mapping relative paths to hex digests.
        """
        return self._manifest(self.tagfile_entries(), alg)

    def cs_algorithms(self):
        """
        return the set of checksum algorithm codes for which the bag has
        manifest files
        """
        return set(self.algorithms)

    def user_tag_files(self):
        """
        return the sorted list of paths (relative to the bag's root directory)
        to the tag files that are not generated by the builder--i.e. all files
        outside the payload directory except the declaration, bag-info.txt,
        fetch.txt, and the manifests.
        """
        out = []
        for path in self._root.walk.files():
            path = path.lstrip('/')
            if path.startswith(DATA_PATH) or is_reserved_tag(path):
                continue
            out.append(path)
        return sorted(out)

    def fetch_references(self):
        """
        return the list of (url, size, path) tuples listed in fetch.txt, with
        line breaks encoded in the paths restored
        """
        return [(url, size, _decode_filename(path))
                for url, size, path in self.fetch_entries()]

    def _file(self, path):
        if self._opaque:
            raise AccessDeniedError("Bag is opaque; file paths are not available")
        self._check_relpath(path)
        return os.path.join(self.path, *path.split('/'))

    def payload_file(self, relpath):
        """
        return the filesystem path of a payload file

        :param str relpath:  the path relative to the payload directory
        :raises AccessDeniedError:  if the bag is opaque
        """
        return self._file(DATA_PATH + relpath)

    def tag_file(self, relpath):
        """
        return the filesystem path of a tag file

        :param str relpath:  the path relative to the bag's root directory
        :raises AccessDeniedError:  if the bag is opaque
        """
        return self._file(relpath)

    def payload_stream(self, relpath):
        """
        return a read-only binary stream for a payload file.  This is
        available whether or not the bag is opaque.

        :param str relpath:  the path relative to the payload directory
        """
        return self.open_bin(DATA_PATH + relpath)

    def tag_stream(self, relpath):
        """
        return a read-only binary stream for a tag file.

        :param str relpath:  the path relative to the bag's root directory
        """
        return self.open_bin(relpath)

    def save(self, processes=1, manifests=False):
        """
        This implementation will always raise a BagError exception
        complaining that the bag was opened read-only
        """
        raise BagError("Unable to save as the bag was opened read-only")

    def validation_results(self, completeness_only=False, want=ALL):
        """
        run the completeness (and, unless completeness_only is True,
        checksum) tests on the current contents of the bag and return the
        ValidationResults.
        """
        return BagValidator(self).validate(want,
                                           completeness_only=completeness_only)

    @staticmethod
    def status(results):
        """
        return the status code implied by a set of validation results:
        STATUS_INCOMPLETE if payload is missing, STATUS_INVALID if a checksum
        does not match, and STATUS_OK otherwise.  Warnings are not counted.
        """
        failed = results.failed_labels(ERROR)
        if PAYLOAD_COMPLETE in failed:
            return STATUS_INCOMPLETE
        if CHECKSUMS in failed:
            return STATUS_INVALID
        return STATUS_OK

    def complete_status(self):
        """
        return STATUS_OK (0) if every manifest-listed payload file is present
        locally, STATUS_INCOMPLETE otherwise
        """
        return self.status(self.validation_results(True, ERROR))

    def validation_status(self):
        """
        return STATUS_OK (0) if the bag is complete and every listed file
        matches its checksums; STATUS_INCOMPLETE if payload is missing;
        STATUS_INVALID if a checksum does not match.
        """
        return self.status(self.validation_results(False, ERROR))

    def is_complete(self):
        """
        return True if every payload file listed in the manifests is present
        in the payload directory.  Payload referenced only through fetch.txt
        is not present.
        """
        return self.complete_status() == STATUS_OK

    def is_valid(self, processes=1, fast=False, completeness_only=False):
        """
        return True if the bag is complete and every manifest-listed payload
        and tag file matches its recorded checksums.

        :param int processes:  ignored; files are checked sequentially
        :param bool fast:  ignored; validation always re-reads every file
        :param bool completeness_only:  if True, only test completeness
        """
        if completeness_only:
            return self.is_complete()
        return self.validation_status() == STATUS_OK
