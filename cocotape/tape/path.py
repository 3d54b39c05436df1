"""
cocotape - tape.path
Paths to files on cassette tape images

(c) 2015--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import io
import os
import logging

from ..base.error import (
    TapeError, EndOfTape, TapeFileNotFound, BadFileModeError, BadFileNameError,
    UnknownFormatError, safe_io
)
from ..config import TapeSettings
from .bitstream import CASBitStream, WAVBitStream, timestamp
from .blocks import (
    BlockReader, BlockWriter, DirEntry, normalise_name,
    DATA_BLOCK, EOF_BLOCK, MAX_BLOCK_LENGTH, LEADER_BYTE, SYNC_BYTE, BASIC_FILE, BINARY
)


# access modes
READ = 0x01
WRITE = 0x02
UPDATE = READ | WRITE
# block-level access only
RAW = 0x80

# container types
CAS = 'CAS'
WAV = 'WAV'
CAS_FILE_EXTENSION = '.cas'
WAV_FILE_EXTENSION = '.wav'

# record delimiter in ASCII files
CR = b'\r'

# number of bytes examined to recognise a container without known extension
SNIFF_LENGTH = 4096

# silence between namefile and data blocks, in milliseconds
PAUSE_LENGTH = 500


def parse_pathlist(pathlist):
    """Split [CAS:|WAV:]image[,FILENAME] into container, image and 8-byte filename."""
    container = None
    prefix, sep, rest = pathlist.partition(':')
    if sep and prefix.upper() in (CAS, WAV):
        container, pathlist = prefix.upper(), rest
    image, sep, filename = pathlist.rpartition(',')
    if not sep:
        return container, pathlist, None
    if not filename:
        return container, image, None
    return container, image, normalise_name(filename)

def classify(image, stream, container=None):
    """Determine the container type from the extension or the contents."""
    if container:
        return container
    ext = os.path.splitext(image)[1].lower()
    if ext == CAS_FILE_EXTENSION:
        return CAS
    if ext == WAV_FILE_EXTENSION:
        return WAV
    with safe_io():
        stream.seek(0)
        head = stream.read(SNIFF_LENGTH)
    if head[:4] == b'RIFF' and head[8:12] == b'WAVE':
        return WAV
    if bytes((LEADER_BYTE, SYNC_BYTE)) in head:
        return CAS
    raise UnknownFormatError(image)


class TapePath(object):
    """Open file, or raw block access, on a cassette tape image."""

    def __init__(self, image, stream, container, mode, filename, settings):
        """Initialise path on an open image stream."""
        self.image = image
        self.mode = mode
        self.container = container
        # requested filename, or None
        self.filename = filename
        self.israw = bool(mode & RAW) or filename is None
        self.settings = settings
        self.dir_entry = None
        # logical file position
        self.filepos = 0
        # currently held block
        self.block_type = None
        self.data = b''
        self.current_pointer = 0
        self.eof_flag = False
        # error met while reading ahead, to be raised on the next read without data
        self._error = None
        self._stream = stream
        if container == WAV:
            self._bits = WAVBitStream(stream, settings, create=bool(mode & WRITE))
        else:
            self._bits = CASBitStream(stream, settings.start_sample)
        self._reader = BlockReader(self._bits, settings.sync_limit)
        self._writer = BlockWriter(self._bits)
        # output buffer for the next data block
        self._out = bytearray()
        self._blocks_written = 0
        self._writing = False
        self._closed = False

    def __repr__(self):
        """Debugging representation."""
        return '<TapePath %s %r %r mode=%#04x>' % (
            self.container, self.image, self.filename, self.mode
        )

    def __enter__(self):
        """Context guard."""
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Context guard."""
        self.close()

    @property
    def length(self):
        """Length of the held block."""
        return len(self.data)

    def close(self):
        """Finalise the file being written and release the image."""
        if self._closed:
            return
        self._closed = True
        try:
            if self._writing:
                self._flush_block()
                self._writer.write_block(EOF_BLOCK)
            self._bits.close()
        finally:
            with safe_io():
                self._stream.close()

    ##########################################################################
    # observers

    def get_position(self):
        """Logical position in the file."""
        return self.filepos

    def get_eof(self):
        """End-of-file flag."""
        return self.eof_flag

    def tape_position(self):
        """Position in the image: (byte, bit) for CAS, sample for WAV."""
        return self._bits.tell()

    ##########################################################################
    # logical reading

    def read(self, size):
        """Read up to size bytes; fewer are returned only at end of file."""
        self._check_mode(READ)
        out = bytearray()
        while len(out) < size:
            if self.current_pointer >= len(self.data) and not self._advance():
                break
            count = min(size - len(out), len(self.data) - self.current_pointer)
            out += self.data[self.current_pointer:self.current_pointer+count]
            self.current_pointer += count
        self._read_ahead()
        if not out and size > 0:
            self._raise_error()
        self.filepos += len(out)
        return bytes(out)

    def readln(self, size):
        """Read up to size bytes, stopping at a carriage return which is consumed but not returned."""
        self._check_mode(READ)
        out = bytearray()
        consumed = 0
        while len(out) < size:
            if self.current_pointer >= len(self.data) and not self._advance():
                break
            end = min(len(self.data), self.current_pointer + size - len(out))
            chunk = self.data[self.current_pointer:end]
            delimiter = chunk.find(CR)
            if delimiter >= 0:
                out += chunk[:delimiter]
                self.current_pointer += delimiter + 1
                consumed += delimiter + 1
                break
            out += chunk
            self.current_pointer = end
            consumed += len(chunk)
        self._read_ahead()
        if not consumed and size > 0:
            self._raise_error()
        self.filepos += consumed
        return bytes(out)

    def _advance(self):
        """Load the next data block; False at end of file or on error."""
        if self.eof_flag or self._error:
            return False
        try:
            self._load_next_data_block()
        except TapeError as e:
            self._error = e
            return False
        return not self.eof_flag

    def _read_ahead(self):
        """Refill an exhausted buffer so that end of file is flagged as soon as it is reached."""
        if self.current_pointer >= len(self.data):
            self._advance()

    def _load_next_data_block(self):
        """Read blocks until a data block is held or the file ends."""
        while True:
            try:
                block = self._reader.read_block()
            except EndOfTape:
                logging.debug(
                    '%sEnd of tape before end-of-file block', timestamp(self._bits.counter())
                )
                self._set_eof(None)
                return
            if block.block_type == DATA_BLOCK:
                if not block.data:
                    # zero-length data blocks are padding
                    continue
                self.block_type = block.block_type
                self.data = block.data
                self.current_pointer = 0
                return
            if block.block_type != EOF_BLOCK:
                logging.debug(
                    '%sBlock of type %02x ends file',
                    timestamp(self._bits.counter()), block.block_type
                )
            self._set_eof(block.block_type)
            return

    def _set_eof(self, block_type):
        """Flag end of file."""
        self.eof_flag = True
        self.block_type = block_type
        self.data = b''
        self.current_pointer = 0

    def _raise_error(self):
        """Raise the error met while reading ahead, if any."""
        if self._error:
            error, self._error = self._error, None
            raise error

    def _find_file(self):
        """Play until the directory entry for the requested file is found."""
        while True:
            try:
                entry = self._reader.read_dir_entry()
            except EndOfTape:
                raise TapeFileNotFound(self.filename.rstrip(b' ').decode('latin-1'))
            if entry.filename == self.filename:
                logging.debug('%s%s Found.', timestamp(self._bits.counter()), entry.name)
                self.dir_entry = entry
                self._advance()
                return
            logging.debug('%s%s Skipped.', timestamp(self._bits.counter()), entry.name)

    ##########################################################################
    # block-level access

    def read_next_dir_entry(self):
        """Play until the next directory entry and return it."""
        self._check_mode(READ, logical=False)
        return self._reader.read_dir_entry()

    def read_next_block(self):
        """Read the next block of any type."""
        self._check_mode(READ, logical=False)
        return self._reader.read_block()

    def directory(self):
        """Iterate over the remaining directory entries on the tape."""
        while True:
            try:
                yield self.read_next_dir_entry()
            except EndOfTape:
                return

    def write_block(self, block_type, data=b''):
        """Append a framed block to a raw path."""
        self._check_mode(WRITE, logical=False)
        if not self.israw:
            raise BadFileModeError('block writes need a raw path')
        self._writer.write_block(block_type, data)

    def write_leader(self):
        """Append a leader to a raw path."""
        self._check_mode(WRITE, logical=False)
        if not self.israw:
            raise BadFileModeError('leader writes need a raw path')
        self._writer.write_leader()

    ##########################################################################
    # logical writing

    def write(self, data):
        """Write bytes to the file."""
        self._check_mode(WRITE)
        if not self._writing:
            raise BadFileModeError('no file created on this path')
        self._out += data
        while len(self._out) >= MAX_BLOCK_LENGTH:
            self._write_data_block(bytes(self._out[:MAX_BLOCK_LENGTH]))
            del self._out[:MAX_BLOCK_LENGTH]
        self.filepos += len(data)

    def writeln(self, data=b''):
        """Write bytes followed by a carriage return."""
        self.write(bytes(data) + CR)

    def _start_file(self, entry):
        """Write leader and namefile block for a new file."""
        self.dir_entry = entry
        self._writer.write_leader()
        self._writer.write_dir_entry(entry)
        self._bits.write_pause(PAUSE_LENGTH)
        self._writer.write_leader()
        self._writing = True

    def _write_data_block(self, data):
        """Write a data block, preceded by a leader on gapped files."""
        if self.dir_entry.gap_flag and self._blocks_written:
            self._bits.write_pause(PAUSE_LENGTH)
            self._writer.write_leader()
        self._writer.write_block(DATA_BLOCK, data)
        self._blocks_written += 1

    def _flush_block(self):
        """Write the partial block in the output buffer."""
        if self._out:
            self._write_data_block(bytes(self._out))
            self._out = bytearray()

    def _check_mode(self, required, logical=True):
        """Raise if the path does not allow the operation."""
        if self._closed:
            raise ValueError('I/O operation on closed tape path')
        if not self.mode & required:
            raise BadFileModeError('operation not allowed in access mode %#04x' % (self.mode,))
        if logical and self.israw:
            raise BadFileModeError('raw path allows block access only')


##############################################################################
# path lifecycle

def open(pathlist, mode=READ, settings=None):
    """Open a file on a tape image, or the image itself for raw access if no filename is given."""
    if not mode & (READ | RAW):
        raise BadFileModeError('open needs read or raw access; use create to write files')
    container, image, filename = parse_pathlist(pathlist)
    settings = (settings or TapeSettings()).copy()
    with safe_io():
        stream = io.open(image, 'r+b' if mode & WRITE else 'rb')
    try:
        path = TapePath(image, stream, classify(image, stream, container), mode, filename, settings)
        if not path.israw:
            path._find_file()
    except BaseException:
        stream.close()
        raise
    return path

def create(
        pathlist, mode=WRITE, file_type=BASIC_FILE, data_type=BINARY, gap=False,
        load_address=0, exec_address=0, settings=None
    ):
    """Create a file at the end of a tape image, creating the image if necessary."""
    if not mode & WRITE:
        raise BadFileModeError('create needs write access')
    container, image, filename = parse_pathlist(pathlist)
    if filename is None and not mode & RAW:
        raise BadFileNameError('no filename given')
    settings = (settings or TapeSettings()).copy()
    with safe_io():
        stream = io.open(image, 'r+b' if os.path.exists(image) else 'w+b')
    try:
        path = TapePath(image, stream, classify(image, stream, container), mode, filename, settings)
        if not path.israw:
            path._start_file(DirEntry(
                filename, file_type, bool(data_type), gap, load_address, exec_address
            ))
    except BaseException:
        stream.close()
        raise
    return path

def close(path):
    """Close a tape path."""
    path.close()
