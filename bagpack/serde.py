"""
This module converts bags between their directory form and their serialized
forms:  archive files ("packages") and byte streams in the zip, tar, or
gzip-compressed tar (tgz) formats.

A serialized bag contains one entry per file, in sorted order, each named
with a path starting with the name of the bag's root directory.  When a bag
is serialized, the bag directory is replaced by the package file written
next to it (or into a requested parent directory).  When a package is
deserialized, it is extracted into a directory (the root directory name is
taken from the archive) and the file modification times recorded in the
archive are restored.
"""
import os, io, gzip, shutil, struct, tarfile, tempfile, threading, time
import posixpath, zipfile, logging

import fs.osfs

from .constants import (DEFAULT_FORMAT, SUFFIX_FORMATS, FORMAT_SIGNATURES,
                        DATA_DIR)
from .access.bagit import Bag
from .access.exceptions import (NotFoundError, UnsupportedFormatError,
                                InvalidPathError)

log = logging.getLogger(__name__)

# the zip "extended timestamp" extra field
EXTENDED_TIMESTAMP = 0x5455
UT_MTIME = 0x1
UT_ATIME = 0x2
UT_CTIME = 0x4

ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
_SIGNATURE_LENGTH = max(off + len(sig) for off, sig in FORMAT_SIGNATURES.values())

def archive_format(name):
    """
    return the canonical archive format ("zip", "tar", or "tgz") for a format
    name or file suffix (e.g. "gz" gives "tgz").

    :raises UnsupportedFormatError:  if the name is not recognized
    """
    fmt = SUFFIX_FORMATS.get(str(name).lower().lstrip('.'))
    if not fmt:
        raise UnsupportedFormatError("Unsupported archive format: " + str(name))
    return fmt

def package_root_name(filename):
    """
    return the name of the bag root directory expected in a package file
    with the given name:  the file name without its suffix, with any
    trailing ".tar" also removed (e.g. "mybag.tar.gz" gives "mybag").
    """
    stem = os.path.splitext(os.path.basename(filename))[0]
    if stem.endswith(".tar"):
        stem = stem[:-len(".tar")]
    return stem

def has_signature(fd, fmt):
    """
    return True if the beginning of the given binary stream carries the
    signature ("magic bytes") of the given archive format.  The stream is
    read but not rewound.
    """
    offset, magic = FORMAT_SIGNATURES[fmt]
    head = fd.read(_SIGNATURE_LENGTH)
    return head[offset:offset+len(magic)] == magic

def from_directory(path, opaque=False):
    """
    return the bag in the given directory.

    :param str path:     the path to the bag's root directory
    :param bool opaque:  if True, the returned Bag hides its files' paths
    :raises NotFoundError:  if the directory does not exist
    """
    if not path or not os.path.isdir(str(path)):
        raise NotFoundError("Missing or nonexistent bag directory: "+str(path))
    return Bag(path, opaque)

def from_package(path, opaque=False, dest_parent=None, logger=None):
    """
    extract a bag from a package file and return it.  The format is
    determined by the file's suffix (one of zip, tar, tgz, or gz) and must
    agree with the file's signature.

    :param str path:         the path to the package file
    :param bool opaque:      if True, the returned Bag hides its files' paths
    :param str dest_parent:  the directory to extract the bag into; by
                             default, the package's directory is used.
    :param Logger logger:    the logger to send messages to
    :raises NotFoundError:   if the package file does not exist
    :raises UnsupportedFormatError:  if the suffix is not recognized or the
                             file content does not match it
    """
    if not logger:
        logger = log
    if not path or not os.path.isfile(str(path)):
        raise NotFoundError("Missing or nonexistent bag package: " + str(path))
    path = str(path)
    suffix = os.path.splitext(path)[1]
    if not suffix:
        raise UnsupportedFormatError("Package file has no format suffix: "+path)
    fmt = archive_format(suffix)
    with open(path, 'rb') as fd:
        if not has_signature(fd, fmt):
            raise UnsupportedFormatError("Package file content is not in {0} "
                                         "format: {1}".format(fmt, path))

    if not dest_parent:
        dest_parent = os.path.dirname(os.path.abspath(path))
    logger.info("Extracting %s package: %s", fmt, path)
    with open(path, 'rb') as fd:
        bagdir = _inflate(fd, fmt, dest_parent, package_root_name(path), logger)
    return Bag(bagdir, opaque)

def from_stream(stream, format=DEFAULT_FORMAT, opaque=False, dest_parent=None,
                logger=None):
    """
    extract a bag from a serialized stream and return it.

    :param stream:           a readable binary stream
    :param str format:       the archive format of the stream
    :param bool opaque:      if True, the returned Bag hides its files' paths
    :param str dest_parent:  the directory to extract the bag into; by
                             default, a new temporary directory is created.
    :param Logger logger:    the logger to send messages to
    """
    if not logger:
        logger = log
    fmt = archive_format(format)
    if not dest_parent:
        dest_parent = tempfile.mkdtemp(prefix="bagparent")
    logger.info("Extracting %s stream into %s", fmt, dest_parent)
    return Bag(_inflate(stream, fmt, dest_parent, None, logger), opaque)

def to_package(bag, format=DEFAULT_FORMAT, no_time=False, dest_parent=None,
               logger=None):
    """
    serialize a bag into a package file and remove the bag's directory.  The
    Bag is closed afterward.

    :param Bag bag:          the bag to serialize
    :param str format:       the archive format to use: zip, tar, or tgz
    :param bool no_time:     if True, all timestamps in the package are
                             zeroed, so that the package's bytes depend only
                             on the bag's content
    :param str dest_parent:  the directory to write the package into; by
                             default, the bag directory's parent is used.
    :param Logger logger:    the logger to send messages to
    :return: the path to the package file
    :rtype: str
    :raises NotFoundError:   if the bag directory no longer exists
    """
    if not logger:
        logger = log
    fmt = archive_format(format)
    bagdir = bag.path
    if not os.path.isdir(bagdir):
        raise NotFoundError("Bag directory no longer exists: " + str(bag))
    if not dest_parent:
        dest_parent = os.path.dirname(bagdir)
    elif not os.path.isdir(dest_parent):
        os.makedirs(dest_parent)
    pkg = os.path.join(dest_parent, bag.name + "." + fmt)

    logger.info("Writing %s package for %s", fmt, bag.name)
    with open(pkg, 'wb') as out:
        _deflate(bagdir, out, fmt, no_time, logger)
    shutil.rmtree(bagdir)
    bag.close()
    return pkg

def to_stream(bag, format=DEFAULT_FORMAT, no_time=False, logger=None):
    """
    serialize a bag and return the serialization as an open, readable binary
    stream.  As with to_package(), the bag's directory is replaced by a
    package file.  If the bag is ephemeral, the package file is deleted when
    the stream is closed.

    :raises NotFoundError:   if the bag directory no longer exists
    """
    pkg = to_package(bag, format, no_time, logger=logger)
    if bag.ephemeral:
        return CleanupStream(pkg, logger)
    return open(pkg, 'rb')

class CleanupStream(io.BufferedReader):
    """
    a readable stream from a file that deletes the file when the stream is
    closed
    """

    def __init__(self, path, logger=None):
        self._path = path
        self._log = logger or log
        self._cleanup_lock = threading.Lock()
        super(CleanupStream, self).__init__(io.FileIO(path, 'r'))

    def close(self):
        with self._cleanup_lock:
            try:
                super(CleanupStream, self).close()
            finally:
                if self._path:
                    path, self._path = self._path, None
                    if os.path.exists(path):
                        os.remove(path)
                        self._log.debug("Removed ephemeral package: %s", path)

def _bag_files(bagdir):
    """
    return the (filepath, entry name) pairs for all the files in a bag, sorted
    by entry name
    """
    name = os.path.basename(bagdir)
    with fs.osfs.OSFS(bagdir) as bagfs:
        paths = sorted(p.lstrip('/') for p in bagfs.walk.files())
    return [(os.path.join(bagdir, *p.split('/')), name + '/' + p) for p in paths]

def _deflate(bagdir, out, fmt, no_time, logger):
    files = _bag_files(bagdir)
    if fmt == "zip":
        with zipfile.ZipFile(out, 'w', zipfile.ZIP_DEFLATED) as zf:
            for filepath, arcname in files:
                _zip_entry(zf, filepath, arcname, no_time)
                logger.debug("Added %s", arcname)
        return

    gz = None
    if fmt == "tgz":
        gz = gzip.GzipFile(filename='', mode='wb', fileobj=out,
                           mtime=0 if no_time else None)
        out = gz
    try:
        with tarfile.open(fileobj=out, mode='w') as tf:
            for filepath, arcname in files:
                tinfo = tf.gettarinfo(filepath, arcname)
                tinfo.mtime = 0 if no_time else int(tinfo.mtime)
                with open(filepath, 'rb') as fd:
                    tf.addfile(tinfo, fd)
                logger.debug("Added %s", arcname)
    finally:
        if gz:
            gz.close()

def _zip_date_time(mtime):
    tm = time.localtime(mtime)
    if tm.tm_year < 1980:
        return ZIP_EPOCH
    return tuple(tm[:6])

def _ut_time(secs):
    # the extended timestamp field holds signed 32-bit seconds
    return min(max(int(secs), -2**31), 2**31 - 1)

def _zip_entry(zf, filepath, arcname, no_time):
    st = os.stat(filepath)
    if no_time:
        mtime = ctime = 0
        zinfo = zipfile.ZipInfo(arcname, ZIP_EPOCH)
    else:
        mtime = _ut_time(st.st_mtime)
        ctime = _ut_time(getattr(st, 'st_birthtime', st.st_mtime))
        zinfo = zipfile.ZipInfo(arcname, _zip_date_time(mtime))
    zinfo.extra = struct.pack('<HHBll', EXTENDED_TIMESTAMP, 9,
                              UT_MTIME | UT_CTIME, mtime, ctime)
    zinfo.external_attr = (st.st_mode & 0xFFFF) << 16
    zinfo.compress_type = zipfile.ZIP_DEFLATED
    zinfo.file_size = st.st_size
    with open(filepath, 'rb') as src, zf.open(zinfo, 'w') as dest:
        shutil.copyfileobj(src, dest)

def _zip_mtime(zinfo):
    """
    return the modification time of a zip entry, preferring the value in the
    extended timestamp field (which has a resolution of one second) over the
    DOS date/time (two seconds).
    """
    extra = zinfo.extra
    i = 0
    while i + 4 <= len(extra):
        hid, size = struct.unpack('<HH', extra[i:i+4])
        if hid == EXTENDED_TIMESTAMP and size >= 5 and extra[i+4] & UT_MTIME:
            return struct.unpack('<l', extra[i+5:i+9])[0]
        i += 4 + size
    return time.mktime(zinfo.date_time + (0, 0, -1))

def _safe_entry_name(name):
    """
    return the normalized form of an archive entry name, making sure that it
    does not point outside of the extraction directory.
    """
    norm = posixpath.normpath(name.replace('\\', '/'))
    if not name or posixpath.isabs(norm) or os.path.isabs(name) or \
       norm == '..' or norm.startswith('../') or norm == '.':
        raise InvalidPathError("Unsafe archive entry name: " + name)
    return norm

class _Extractor(object):
    """
    a helper that writes out archive entries below a parent directory and
    keeps track of the bag root directory they belong to
    """

    def __init__(self, parent, rootname, logger):
        self.parent = os.path.abspath(parent)
        self.rootname = rootname
        self.log = logger
        self.found = None

    def _target(self, name):
        name = _safe_entry_name(name)
        if not self.found:
            self.found = name.split('/', 1)[0]
        return os.path.join(self.parent, *name.split('/'))

    def mkdir(self, name):
        target = self._target(name)
        if not os.path.isdir(target):
            os.makedirs(target)

    def write(self, name, src, mtime):
        target = self._target(name)
        parent = os.path.dirname(target)
        if not os.path.isdir(parent):
            os.makedirs(parent)
        with open(target, 'wb') as out:
            shutil.copyfileobj(src, out)
        os.utime(target, (mtime, mtime))
        self.log.debug("Extracted %s", name)

    def bagdir(self):
        """
        return the path to the extracted bag's root directory, making sure
        that it has a payload directory
        """
        name = self.found or self.rootname
        if not name:
            raise UnsupportedFormatError("Archive contains no bag")
        base = os.path.join(self.parent, name)
        datadir = os.path.join(base, DATA_DIR)
        if not os.path.isdir(datadir):
            os.makedirs(datadir)
        return base

def _inflate(stream, fmt, parent, rootname, logger):
    ext = _Extractor(parent, rootname, logger)
    if fmt == "zip":
        spool = None
        if not _seekable(stream):
            spool = tempfile.TemporaryFile()
            shutil.copyfileobj(stream, spool)
            spool.seek(0)
            stream = spool
        try:
            with zipfile.ZipFile(stream) as zf:
                for zinfo in zf.infolist():
                    if zinfo.is_dir():
                        ext.mkdir(zinfo.filename)
                        continue
                    with zf.open(zinfo) as src:
                        ext.write(zinfo.filename, src, _zip_mtime(zinfo))
        finally:
            if spool:
                spool.close()
    else:
        mode = (fmt == "tgz" and "r|gz") or "r|"
        with tarfile.open(fileobj=stream, mode=mode) as tf:
            for member in tf:
                if member.isdir():
                    ext.mkdir(member.name)
                elif member.isfile():
                    src = tf.extractfile(member)
                    ext.write(member.name, src, member.mtime)
                else:
                    logger.warning("Skipping non-file archive entry: %s",
                                   member.name)
    return ext.bagdir()

def _seekable(stream):
    try:
        return stream.seekable()
    except AttributeError:
        return False
