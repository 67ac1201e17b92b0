"""
This module provides the completeness and validity tests for a finished bag.
Checksums are recomputed with the package's digest pipeline over the full
current content of every manifest-listed file.
"""
from bagit import LOGGER, ChecksumMismatch, FileMissing

from .base import (ValidationResults, BagPackValidationError, ERROR, WARN,
                   ALL)
from ..constants import CHECKSUM_ALGORITHMS
from ..digest import file_digests

PAYLOAD_COMPLETE = "Payload-Complete"
PAYLOAD_DECLARED = "Payload-Declared"
CHECKSUMS = "Checksums"

class BagValidator(object):
    """
    A validator that tests whether a Bag is complete (all manifest-listed
    payload is present locally) and valid (all manifest-listed files match
    their recorded checksums).
    """

    def __init__(self, bag):
        """
        initialize the validator for the given bag.

        :param Bag bag:  the (bagpack.access.bagit) Bag to test
        """
        self.target = str(bag)
        self.bag = bag

    def validate(self, want=ALL, results=None, completeness_only=False):
        """
        run the tests, returning a ValidationResults

        :param int want:   the issue severities desired (ERROR, WARN or ALL)
        :param ValidationResults results:  a results object to add to
        :param bool completeness_only:  if True, skip the (expensive)
                           checksum test
        """
        if not results:
            results = ValidationResults(self.target, want)

        if want & ERROR:
            self.test_payload_complete(results)
        if want & WARN:
            self.test_payload_declared(results)
        if (want & ERROR) and not completeness_only:
            self.test_checksums(results)

        return results

    def is_valid(self, want=ALL):
        """
        run the tests and return True if none of the wanted severities fail
        """
        return self.validate(want).ok()

    def ensure_valid(self, want=ALL):
        """
        run the tests, raising a BagPackValidationError if any of the wanted
        severities fail.
        """
        results = self.validate(want)
        if not results.ok():
            raise BagPackValidationError(results)
        return results

    def test_payload_complete(self, results):
        """
        test that every payload file listed in a manifest exists in the
        payload directory.  Entries that are only referenced via fetch.txt
        are counted as missing.
        """
        missing = [path for path in self.bag.payload_entries()
                        if not self.bag.isfile(path)]
        results.add(PAYLOAD_COMPLETE, "Every file listed in a payload manifest "
                    "must be present in the payload directory", ERROR,
                    not missing, [str(FileMissing(p)) for p in missing])
        return results

    def test_payload_declared(self, results):
        """
        test that every file in the payload directory is listed in the payload
        manifests.
        """
        listed = self.bag.payload_entries()
        undeclared = [path for path in self.bag.payload_files()
                           if path not in listed]
        for path in undeclared:
            LOGGER.warning("%s: payload file not in any manifest: %s",
                           self.bag, path)
        results.add(PAYLOAD_DECLARED, "Every file in the payload directory "
                    "should be listed in the payload manifests", WARN,
                    not undeclared, ["undeclared: " + p for p in undeclared])
        return results

    def test_checksums(self, results):
        """
        test that every file listed in a payload or tag manifest matches each
        of its recorded checksums.
        """
        comments = []
        for path, hashes in self.bag.entries.items():
            algs = [a for a in hashes if a in CHECKSUM_ALGORITHMS]
            if not algs:
                continue
            if not self.bag.isfile(path):
                comments.append(str(FileMissing(path)))
                continue

            LOGGER.info("Verifying checksum for file %s", path)
            with self.bag.open_bin(path) as fd:
                computed = file_digests(fd, algs)
            for alg in algs:
                stored = hashes[alg].lower()
                if stored != computed[alg]:
                    err = ChecksumMismatch(path, alg, stored, computed[alg])
                    LOGGER.warning(str(err))
                    comments.append(str(err))

        results.add(CHECKSUMS, "Every manifest-listed file must match its "
                    "recorded checksums", ERROR, not comments, comments)
        return results

def validate(bag, want=ALL, completeness_only=False):
    """
    validate the given bag, returning the ValidationResults
    """
    return BagValidator(bag).validate(want, completeness_only=completeness_only)
