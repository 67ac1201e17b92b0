"""
This module provides the BagBuilder, which assembles a bag in a directory.

Content is added to the bag's payload and tag areas from files, streams, or
write-only stream handles; every byte that goes into the bag is digested
with all of the bag's checksum algorithms as it is written, so that the
manifests can be written as the bag is filled.  Calling build() finalizes
the bag in this order:

  1.  the autogenerated metadata (Bagging-Date, Bag-Size, Payload-Oxum,
      Bag-Software-Agent) is appended to bag-info.txt
  2.  the property files (including bag-info.txt and fetch.txt) and any
      outstanding stream handles are closed
  3.  the payload manifests are closed, reporting their own digests to the
      tag manifests
  4.  the bagit.txt declaration is written (always in UTF-8)
  5.  the tag manifests are closed

so that the tag manifests cover every other tag file but never themselves.
"""
import os, re, codecs, logging, posixpath, tempfile, threading
from collections import OrderedDict
from datetime import date
from urllib.parse import urlparse

from bagit import _encode_filename

from .constants import (DEFAULT_ENCODING, DEFAULT_CS_ALGORITHM, BAGIT_VERSION,
                        SOFTWARE_AGENT, DECL_FILE, META_FILE, REF_FILE,
                        MANIF_FILE, TAGMANIF_FILE, DATA_DIR, DATA_PATH,
                        AUTOGEN_NAMES, EolRule, MetadataName, line_separator,
                        is_reserved_tag)
from .digest import validate_algorithms, checksum_code, digest_copy
from .writer import BagOutputStream, FlatWriter, manifest_line
from .access.bagit import Bag
from .access.exceptions import (ConfigurationError, DuplicateEntryError,
                                InvalidPathError, InvalidReferenceError,
                                BagBuiltError)

OPEN = "open"
BUILT = "built"

def format_bytes(nbytes):
    """
    format a byte count for display with a decimal (SI) unit prefix, e.g.
    "4.875 kB".
    """
    prefs = ["", "k", "M", "G", "T"]
    ordr = 0
    while nbytes >= 1000.0 and ordr < 4:
        nbytes /= 1000.0
        ordr += 1
    pref = prefs[ordr]
    ordr = 0
    while nbytes >= 10.0:
        nbytes /= 10.0
        ordr += 1
    nbytes = "{0:5f}".format(round(nbytes, 3) * 10**ordr)
    if '.' in nbytes:
        nbytes = re.sub(r"0+$", "", nbytes)
    if nbytes.endswith('.'):
        nbytes = nbytes[:-1]
    return "{0} {1}B".format(nbytes, pref)

# bagit reads these back from manifest paths as CR and LF
_encoded_break = re.compile(r"%0[AaDd]")

def _is_absolute_uri(uri):
    return bool(urlparse(str(uri)).scheme)

class BagBuilder(object):
    """
    A builder that fills a bag directory and then finalizes it into a Bag.

    A builder constructed without a directory works in a private temporary
    directory and produces an *ephemeral* bag (see bagpack.serde.to_stream).
    Once build() has been called, the builder can no longer be filled; calling
    build() again just returns a new Bag instance for the same directory.

    The builder is not meant to be filled from several threads at once; only
    the creation of property file writers and stream handles is guarded
    against concurrent calls.
    """

    def __init__(self, bagdir=None, encoding=DEFAULT_ENCODING,
                 eol=EolRule.SYSTEM, algorithms=(DEFAULT_CS_ALGORITHM,),
                 logger=None):
        """
        create the builder, initializing the bag directory.

        :param str bagdir:     the directory to build the bag in; it is created
                               if necessary.  If None, a temporary directory
                               is created and the bag will be ephemeral.
        :param str encoding:   the character encoding to use for the tag files
                               (e.g. "UTF-8" or "UTF-16")
        :param str eol:        the EolRule giving the line terminator for the
                               generated tag files
        :param algorithms:     the checksum algorithms to use (codes or display
                               names)
        :param Logger logger:  the logger to send messages to; if not provided,
                               a module logger will be used.
        :raises ConfigurationError:  if the algorithms, the encoding, or the
                               EOL rule are not recognized
        """
        self.log = logger or logging.getLogger(__name__)
        self._algs = validate_algorithms(algorithms)
        try:
            codecs.lookup(encoding)
        except (LookupError, TypeError):
            raise ConfigurationError("Unsupported tag file encoding: " +
                                     str(encoding))
        self._encoding = encoding
        self._eol = line_separator(eol)
        if self._eol is None:
            raise ConfigurationError("Unrecognized EOL rule: " + str(eol))

        self._ephemeral = bagdir is None
        if self._ephemeral:
            bagdir = tempfile.mkdtemp(prefix="bag")
        self._bagdir = os.path.abspath(str(bagdir))
        datadir = os.path.join(self._bagdir, DATA_DIR)
        if not os.path.isdir(datadir):
            os.makedirs(datadir)

        self._lock = threading.Lock()
        self._state = OPEN
        self._autogen = list(AUTOGEN_NAMES)
        self._payload_size = 0
        self._payload_count = 0
        self._refs = set()

        # property file writers and stream handles, keyed by bag-relative path
        self._writers = OrderedDict()
        self._streams = OrderedDict()

        self._tagwriters = OrderedDict()
        self._manwriters = OrderedDict()
        for alg in self._algs:
            name = TAGMANIF_FILE + alg + ".txt"
            self._tagwriters[alg] = FlatWriter(self._bagfile(name), name,
                                               self._algs, None,
                                               self._encoding, self._eol)
        for alg in self._algs:
            name = MANIF_FILE + alg + ".txt"
            self._manwriters[alg] = FlatWriter(self._bagfile(name), name,
                                               self._algs, self._tagwriters,
                                               self._encoding, self._eol,
                                               record=True)
        self.log.debug("Initialized bag directory: %s", self._bagdir)

    @classmethod
    def from_bag(cls, bagdir, basis, algorithms=None, encoding=None,
                 eol=EolRule.SYSTEM, logger=None):
        """
        create a builder for a new bag that is seeded with the contents of an
        existing bag:  the new bag gets copies of the basis bag's payload
        files, its (non-generated) tag files, its fetch references, and its
        bag-info.txt metadata.  The autogenerated metadata properties are not
        copied as they are regenerated when the new bag is built.

        :param str bagdir:   the directory to build the new bag in (see the
                             constructor)
        :param basis:        the basis bag, either as a Bag instance or as
                             the path to its root directory
        :param algorithms:   the checksum algorithms for the new bag; by
                             default, the basis bag's algorithms are used.
        :param str encoding: the tag file encoding; by default, the basis
                             bag's encoding is used.
        :raises InvalidReferenceError:  if the basis bag has fetch references
                             but does not have checksums for all of the new
                             bag's algorithms
        """
        if not isinstance(basis, Bag):
            basis = Bag(basis)
        if not algorithms:
            algorithms = sorted(basis.algorithms) or [DEFAULT_CS_ALGORITHM]
        if not encoding:
            encoding = basis.encoding

        out = cls(bagdir, encoding, eol, algorithms, logger)
        out.log.info("Seeding bag from basis bag, %s", basis.name)

        for path in sorted(p.replace(os.sep, '/') for p in basis.payload_files()):
            relpath = path[len(DATA_PATH):]
            if basis.opaque:
                with basis.payload_stream(relpath) as fd:
                    out.payload(relpath, fd)
            else:
                out.payload(relpath, basis.payload_file(relpath))

        for path in basis.user_tag_files():
            with basis.tag_stream(path) as fd:
                out.tag(path, fd)

        for url, size, path in basis.fetch_references():
            hashes = basis.entries.get(os.path.normpath(path), {})
            size = int(size) if size.isdigit() else -1
            out.payload_ref_unsafe(path[len(DATA_PATH):], size, url,
                                   dict((a, h) for a, h in hashes.items()
                                        if a in out._algs))

        for name, value in basis.properties(META_FILE):
            if name not in AUTOGEN_NAMES:
                out.metadata(name, value)

        return out

    @property
    def bagdir(self):
        """
        the path to the bag's root directory
        """
        return self._bagdir

    @property
    def ephemeral(self):
        """
        True if the bag is being built in a temporary directory
        """
        return self._ephemeral

    @property
    def algorithms(self):
        """
        the canonical codes of the checksum algorithms used by this builder
        """
        return self._algs

    @property
    def encoding(self):
        return self._encoding

    @property
    def state(self):
        """
        either "open" (the bag can be filled) or "built"
        """
        return self._state

    def _bagfile(self, relpath):
        return os.path.join(self._bagdir, *relpath.split('/'))

    def _check_open(self):
        if self._state != OPEN:
            raise BagBuiltError("Bag has already been built: " + self._bagdir)

    def _safe_relpath(self, relpath):
        """
        return the normalized form of a bag-relative path, making sure that
        it does not point outside of the bag.
        """
        if not relpath:
            raise InvalidPathError("Empty relative path")
        relpath = str(relpath).replace('\\', '/')
        if posixpath.isabs(relpath) or os.path.isabs(relpath):
            raise InvalidPathError("Path must be relative: " + relpath)
        norm = posixpath.normpath(relpath)
        if norm == '.' or norm == '..' or norm.startswith('../'):
            raise InvalidPathError("Path points outside of the bag: " + relpath)
        if _encoded_break.search(norm):
            raise InvalidPathError("Path contains an encoded line break: " +
                                   relpath)
        return norm

    def _tag_relpath(self, relpath):
        relpath = self._safe_relpath(relpath)
        if relpath == DATA_DIR or relpath.startswith(DATA_PATH):
            raise InvalidPathError("Tag files not allowed in payload directory: "
                                   + relpath)
        return relpath

    def _occupied(self, relpath):
        return relpath in self._streams or relpath in self._writers or \
               relpath in self._refs or os.path.exists(self._bagfile(relpath))

    def _destination(self, relpath):
        """
        return the filesystem path for a new file in the bag, creating its
        parent directory as needed.

        :raises DuplicateEntryError:  if the path is already in use
        """
        if self._occupied(relpath):
            raise DuplicateEntryError(relpath)
        dest = self._bagfile(relpath)
        parent = os.path.dirname(dest)
        if not os.path.isdir(parent):
            os.makedirs(parent)
        return dest

    def _intake(self, relpath, source, successors):
        """
        copy content from a file path or a readable stream into the bag,
        reporting its digests to the given manifest writers.  Returns the
        number of bytes copied.
        """
        dest = self._destination(relpath)
        if isinstance(source, (str, os.PathLike)):
            with open(source, 'rb') as fd:
                nbytes = self._digest_into(fd, dest, relpath, successors)
        else:
            nbytes = self._digest_into(source, dest, relpath, successors)
        self.log.debug("Added %s (%d bytes)", relpath, nbytes)
        return nbytes

    def _digest_into(self, fd, dest, relpath, successors):
        with open(dest, 'wb') as out:
            nbytes, hexdigests = digest_copy(fd, out, self._algs)
        for alg, hexdigest in hexdigests.items():
            successors[alg].write_line(manifest_line(hexdigest, relpath))
        return nbytes

    def payload(self, relpath, source):
        """
        add a file to the bag's payload.

        :param str relpath:  the path to give the file relative to the payload
                             (data) directory
        :param source:       either the path to a file to copy or a readable
                             binary stream.  When a file path is given, the
                             file's access and modification times are copied
                             as well.
        :return: this builder
        :raises DuplicateEntryError:  if the payload path is already in use
        """
        self._check_open()
        relpath = DATA_PATH + self._safe_relpath(relpath)
        st = None
        if isinstance(source, (str, os.PathLike)):
            st = os.stat(source)
        self._payload_size += self._intake(relpath, source, self._manwriters)
        self._payload_count += 1
        if st:
            os.utime(self._bagfile(relpath), ns=(st.st_atime_ns, st.st_mtime_ns))
        return self

    def payload_stream(self, relpath):
        """
        open and return a write-only binary stream to a new payload file.  The
        file's manifest entries are written when the stream is closed (or when
        the bag is built, whichever comes first).

        :param str relpath:  the path to the file relative to the payload
                             directory
        :rtype: BagOutputStream
        """
        self._check_open()
        relpath = DATA_PATH + self._safe_relpath(relpath)
        return self._stream(relpath, self._manwriters)

    def _stream(self, relpath, successors):
        with self._lock:
            dest = self._destination(relpath)
            stream = BagOutputStream(dest, relpath, self._algs, successors)
            self._streams[relpath] = stream
        self.log.debug("Opened stream to %s", relpath)
        return stream

    def payload_ref(self, relpath, source, uri):
        """
        add a payload file that is referenced by a URI via fetch.txt rather
        than stored in the bag.  The content is read only to compute its
        digests and size.

        :param str relpath:  the path to the file relative to the payload
                             directory
        :param source:       a file path or a readable binary stream giving
                             the file's content
        :param str uri:      the absolute URI the content can be fetched from
        :return: this builder
        :raises InvalidReferenceError:  if the URI is not absolute or no
                             source is given (see payload_ref_unsafe())
        """
        self._check_open()
        relpath = DATA_PATH + self._safe_relpath(relpath)
        if self._occupied(relpath):
            raise DuplicateEntryError(relpath)
        if not _is_absolute_uri(uri):
            raise InvalidReferenceError("URI must be absolute: " + str(uri))
        if source is None:
            raise InvalidReferenceError("No content to digest for " + relpath +
                                        "; use payload_ref_unsafe() to "
                                        "supply checksums")

        if isinstance(source, (str, os.PathLike)):
            with open(source, 'rb') as fd:
                nbytes, hexdigests = digest_copy(fd, None, self._algs)
        else:
            nbytes, hexdigests = digest_copy(source, None, self._algs)
        for alg, hexdigest in hexdigests.items():
            self._manwriters[alg].write_line(manifest_line(hexdigest, relpath))
        self._add_ref(relpath, nbytes, uri)
        return self

    def payload_ref_unsafe(self, relpath, size, uri, checksums):
        """
        add a payload file referenced by a URI via fetch.txt, using checksums
        and a size supplied by the caller.  The values are not verified.

        :param str relpath:  the path to the file relative to the payload
                             directory
        :param int size:     the size of the file in bytes; use a value <= 0
                             (or None) if unknown
        :param str uri:      the absolute URI the content can be fetched from
        :param dict checksums:  a map of checksum algorithm to hex digest; it
                             must have exactly the builder's algorithms as keys
        :return: this builder
        :raises InvalidReferenceError:  if the URI is not absolute or the
                             checksums do not match the bag's algorithms
        """
        self._check_open()
        relpath = DATA_PATH + self._safe_relpath(relpath)
        if self._occupied(relpath):
            raise DuplicateEntryError(relpath)
        if not _is_absolute_uri(uri):
            raise InvalidReferenceError("URI must be absolute: " + str(uri))
        try:
            hashes = dict((checksum_code(a), h) for a, h in checksums.items())
        except ConfigurationError as ex:
            raise InvalidReferenceError("Checksums do not match bag's: "+str(ex))
        if set(hashes) != set(self._algs) or len(hashes) != len(checksums):
            raise InvalidReferenceError("Checksums do not match bag's "
                                        "algorithms: " + ", ".join(checksums))

        for alg in self._algs:
            self._manwriters[alg].write_line(manifest_line(hashes[alg], relpath))
        self._add_ref(relpath, size, uri)
        return self

    def _add_ref(self, relpath, size, uri):
        size = str(size) if size and size > 0 else "-"
        self._writer(REF_FILE).write_line("{0} {1} {2}".format(uri, size,
                                                _encode_filename(relpath)))
        self._refs.add(relpath)
        self.log.debug("Added reference for %s: %s", relpath, uri)

    def get_manifest(self, alg):
        """
        return the payload manifest lines written so far for the given
        algorithm.  Entries for payload streams that are still open are not
        included until the streams are closed.

        :param str alg:  the checksum algorithm
        :rtype: list of str
        """
        alg = checksum_code(alg)
        if alg not in self._manwriters:
            return []
        return self._manwriters[alg].lines

    def tag(self, relpath, source):
        """
        add a tag file to the bag.

        :param str relpath:  the path to the file relative to the bag's root
                             directory; it may not be in the payload directory
                             nor be one of the generated tag files
        :param source:       either the path to a file to copy or a readable
                             binary stream
        :return: this builder
        :raises InvalidPathError:  if the path is not allowed for a tag file
        """
        self._check_open()
        relpath = self._tag_relpath(relpath)
        if is_reserved_tag(relpath):
            raise InvalidPathError("Tag file name is reserved: " + relpath)
        self._intake(relpath, source, self._tagwriters)
        return self

    def tag_stream(self, relpath):
        """
        open and return a write-only binary stream to a new tag file.  The
        file's tag manifest entries are written when the stream is closed.
        """
        self._check_open()
        relpath = self._tag_relpath(relpath)
        if is_reserved_tag(relpath):
            raise InvalidPathError("Tag file name is reserved: " + relpath)
        return self._stream(relpath, self._tagwriters)

    def metadata(self, name, value):
        """
        append a metadata property to the bag-info.txt file

        :param str name:   the property name (e.g. one of the MetadataName
                           values)
        :param str value:  the property value
        :return: this builder
        """
        return self.property(META_FILE, name, value)

    def property(self, relpath, name, value):
        """
        append a property to a property tag file.  Long properties are folded
        over several lines.

        :param str relpath:  the path to the property file relative to the
                             bag's root directory
        :return: this builder
        """
        self._check_open()
        relpath = self._tag_relpath(relpath)
        if relpath != META_FILE and is_reserved_tag(relpath):
            raise InvalidPathError("Tag file name is reserved: " + relpath)
        self._writer(relpath).write_property(name, value)
        return self

    def _writer(self, relpath):
        with self._lock:
            writer = self._writers.get(relpath)
            if writer is None:
                if relpath in self._streams or \
                   os.path.exists(self._bagfile(relpath)):
                    raise DuplicateEntryError(relpath)
                parent = os.path.dirname(self._bagfile(relpath))
                if not os.path.isdir(parent):
                    os.makedirs(parent)
                writer = FlatWriter(self._bagfile(relpath), relpath, self._algs,
                                    self._tagwriters, self._encoding, self._eol)
                self._writers[relpath] = writer
        return writer

    def auto_generate(self, names):
        """
        set the metadata properties to generate when the bag is built,
        replacing the default set (Bagging-Date, Bag-Size, Payload-Oxum,
        Bag-Software-Agent).  An empty set turns generation off; names that
        cannot be generated are ignored.

        :return: this builder
        """
        names = set(names or [])
        self._autogen = [n for n in AUTOGEN_NAMES if n in names]
        return self

    def auto_generated(self):
        """
        return the set of metadata names that will be generated when the bag
        is built
        """
        return set(self._autogen)

    def _payload_totals(self):
        size = self._payload_size
        count = self._payload_count
        for relpath, stream in self._streams.items():
            if relpath.startswith(DATA_PATH):
                size += stream.nbytes
                count += 1
        return size, count

    def build(self):
        """
        finalize the bag and return it as a Bag.  Calling this more than once
        has no further effect on the bag's contents.

        :rtype: Bag
        :raises NotFoundError:  if the bag directory no longer exists (e.g.
                                an ephemeral bag that has been reclaimed)
        """
        if self._state == OPEN:
            size, count = self._payload_totals()
            for name in self._autogen:
                if name == MetadataName.BAGGING_DATE:
                    value = date.today().isoformat()
                elif name == MetadataName.BAG_SIZE:
                    value = format_bytes(size)
                elif name == MetadataName.PAYLOAD_OXUM:
                    value = "{0}.{1}".format(size, count)
                else:
                    value = SOFTWARE_AGENT
                self.metadata(name, value)

            for writer in self._writers.values():
                writer.close()
            for stream in self._streams.values():
                stream.close()
            for writer in self._manwriters.values():
                writer.close()

            decl = FlatWriter(self._bagfile(DECL_FILE), DECL_FILE, self._algs,
                              self._tagwriters, DEFAULT_ENCODING, self._eol)
            decl.write_line("BagIt-Version: " + BAGIT_VERSION)
            decl.write_line("Tag-File-Character-Encoding: " + self._encoding)
            decl.close()

            for writer in self._tagwriters.values():
                writer.close()
            self._state = BUILT
            self.log.info("Built bag in %s: %d payload files, %s",
                          self._bagdir, count, format_bytes(size))

        return Bag(self._bagdir, ephemeral=self._ephemeral)
