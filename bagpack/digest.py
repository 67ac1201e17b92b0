"""
The digest pipeline: computing several checksums over a byte stream in a
single pass.

Every algorithm is a stage of a :py:class:`DigestPipeline`; each chunk read
from (or written to) a stream is handed to all stages before the next chunk is
read, so the source is never re-read per algorithm.
"""
import hashlib
from collections import OrderedDict

from bagit import HASH_BLOCK_SIZE

from .constants import CHECKSUM_ALGORITHMS
from .access.exceptions import ConfigurationError

def checksum_code(name):
    """
    return the canonical code (the hashlib name) for a checksum algorithm.
    Display names like "SHA-512" are accepted as well as codes like "sha512".

    :param str name:  the algorithm name or code
    :raises ConfigurationError:  if the algorithm is not in the registry
    """
    if not name:
        raise ConfigurationError("Empty checksum algorithm name")
    code = name.strip().lower().replace("-", "").replace("_", "")
    if code not in CHECKSUM_ALGORITHMS:
        raise ConfigurationError("No such checksum algorithm: " + name)
    return code

def algorithm_name(code):
    """
    return the display name (e.g. "SHA-512") for a checksum algorithm
    """
    return CHECKSUM_ALGORITHMS[checksum_code(code)]

def validate_algorithms(names):
    """
    check a set of checksum algorithm names, returning their canonical codes
    as a tuple in the order given (with duplicates removed).

    :raises ConfigurationError:  if the set is empty or any member is unknown
    """
    if isinstance(names, str):
        names = [names]
    out = []
    for name in (names or []):
        code = checksum_code(name)
        if code not in out:
            out.append(code)
    if not out:
        raise ConfigurationError("No checksum algorithm specified")
    return tuple(out)

class DigestPipeline(object):
    """
    an accumulator that updates one digest per algorithm from a single
    sequence of byte chunks.
    """

    def __init__(self, algorithms):
        """
        :param algorithms:  the canonical codes of the checksum algorithms
                            (already checked with validate_algorithms())
        """
        self._stages = OrderedDict()
        for alg in algorithms:
            try:
                self._stages[alg] = hashlib.new(alg)
            except ValueError as ex:
                # the registry promised this algorithm
                raise RuntimeError("Checksum algorithm unavailable at runtime: "
                                   + alg + ": " + str(ex))
        self.nbytes = 0

    @property
    def algorithms(self):
        return tuple(self._stages.keys())

    def update(self, chunk):
        """
        feed a chunk of bytes to every stage
        """
        for stage in self._stages.values():
            stage.update(chunk)
        self.nbytes += len(chunk)

    def hexdigests(self):
        """
        return an OrderedDict mapping each algorithm to its hex digest of the
        bytes seen so far
        """
        return OrderedDict((alg, h.hexdigest())
                           for alg, h in self._stages.items())

def digest_copy(source, dest, algorithms, blocksize=HASH_BLOCK_SIZE):
    """
    copy the contents of a readable binary stream to a writable one,
    computing the digests of the bytes along the way.

    :param source:      a readable binary file-like object
    :param dest:        a writable binary file-like object, or None to only
                        compute the digests
    :param algorithms:  the canonical codes of the checksum algorithms
    :return: a 2-tuple of the number of bytes copied and the OrderedDict of
             hex digests
    """
    pipeline = DigestPipeline(algorithms)
    while True:
        block = source.read(blocksize)
        if not block:
            break
        pipeline.update(block)
        if dest is not None:
            dest.write(block)
    return pipeline.nbytes, pipeline.hexdigests()

def file_digests(source, algorithms, blocksize=HASH_BLOCK_SIZE):
    """
    return the hex digests of the remaining contents of a readable binary
    stream
    """
    return digest_copy(source, None, algorithms, blocksize)[1]
