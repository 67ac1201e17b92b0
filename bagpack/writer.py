"""
Output handles used while a bag is being built.

A :py:class:`BagOutputStream` writes bytes to one file in the bag while
digesting them; when it is closed, it reports its digests (one line per
checksum algorithm) to its *successor* writers, usually the manifest or
tag-manifest writers of the bag.  A :py:class:`FlatWriter` is a line-oriented
text writer built on top of it that is used for manifests, metadata
property files and the bag declaration.
"""
import codecs, threading

from bagit import _encode_filename

from .constants import FOLD_WIDTH, SPACER
from .digest import DigestPipeline

def manifest_line(hexdigest, relpath):
    """
    return the manifest line for a file, with line breaks in its path
    percent-encoded the way bagit reads them back
    """
    return hexdigest + " " + _encode_filename(relpath)

class BagOutputStream(object):
    """
    a write-only binary stream to a file in a bag that digests everything
    written to it.

    The successors are looked up, not owned:  they must still be open when
    this stream is closed, and they are closed by whoever created them.
    """

    def __init__(self, path, relpath, algorithms, successors=None):
        """
        open the stream

        :param str path:      the filesystem path of the file to write
        :param str relpath:   the file's path relative to the bag's root
                              directory, as it should appear in the
                              successors' manifest lines
        :param algorithms:    the canonical codes of the checksum algorithms
        :param dict successors:  a mapping of algorithm code to the FlatWriter
                              that should receive this file's digest for that
                              algorithm when this stream is closed.  If None,
                              nothing is reported.
        """
        self.path = path
        self.relpath = relpath
        self._successors = successors
        self._pipeline = DigestPipeline(algorithms)
        self._lock = threading.RLock()
        self._closed = False
        self._fd = open(path, 'wb')

    @property
    def nbytes(self):
        """
        the number of bytes written to this stream so far
        """
        return self._pipeline.nbytes

    @property
    def closed(self):
        return self._closed

    def writable(self):
        return True

    def write(self, data):
        """
        write the given bytes to the file
        """
        data = bytes(data)
        with self._lock:
            if self._closed:
                raise ValueError("write to closed bag stream: " + self.relpath)
            self._fd.write(data)
            self._pipeline.update(data)
        return len(data)

    def flush(self):
        if not self._closed:
            self._fd.flush()

    def hexdigests(self):
        """
        return the digests of the bytes written so far
        """
        return self._pipeline.hexdigests()

    def close(self):
        """
        close the file and report its digests to the successor writers.  Only
        the first call has any effect.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._fd.close()
            if self._successors is not None:
                for alg, hexdigest in self._pipeline.hexdigests().items():
                    self._successors[alg].write_line(
                        manifest_line(hexdigest, self.relpath))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()

    def __repr__(self):
        return "<{0} {1}>".format(type(self).__name__, self.relpath)

class FlatWriter(BagOutputStream):
    """
    a sequential line writer for a tag file using a fixed character encoding
    and line terminator.
    """

    def __init__(self, path, relpath, algorithms, successors, encoding, eol,
                 record=False):
        """
        open the writer

        :param str path:      the filesystem path of the file to write
        :param str relpath:   the file's path relative to the bag's root
        :param algorithms:    the canonical codes of the checksum algorithms
        :param dict successors:  the writers to report digests to on close
                              (see BagOutputStream)
        :param str encoding:  the character encoding to write with
        :param str eol:       the line terminator appended to every line
        :param bool record:   if True, keep the written lines in memory so
                              that they can be retrieved via lines
        """
        super(FlatWriter, self).__init__(path, relpath, algorithms, successors)
        # an incremental encoder emits a byte-order mark at most once
        self._encoder = codecs.getincrementalencoder(encoding)()
        self._eol = eol
        self._record = record
        self._lines = []

    @property
    def lines(self):
        """
        the lines written so far (only collected when the writer was created
        with record=True)
        """
        return list(self._lines)

    def write_line(self, line):
        """
        write out a line of text followed by the line terminator.  The text
        is written as given.
        """
        with self._lock:
            if self._record:
                self._lines.append(line)
            self.write(self._encoder.encode(line + self._eol))

    def write_property(self, name, value):
        """
        write a "name: value" property, folding it into FOLD_WIDTH-character
        chunks.  Each continuation chunk goes on its own line, starting with
        a single space.
        """
        prop = "{0}: {1}".format(name, value)
        with self._lock:
            self.write_line(prop[:FOLD_WIDTH])
            for offset in range(FOLD_WIDTH, len(prop), FOLD_WIDTH):
                self.write_line(SPACER + prop[offset:offset+FOLD_WIDTH])
