"""
cocotape - tape.blocks
Cassette BASIC blocks and directory entries

(c) 2015--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import struct
import logging

from ..base.error import (
    EndOfTape, ChecksumError, FramingError, FormatError, TruncatedError, BadFileNameError
)
from .bitstream import timestamp


# Color Computer tape format
# A file starts with a leader of 0x55 bytes followed by a namefile block,
# then (after another leader) its data blocks and an end-of-file block.
# Each block is framed as:
#   0x55 0x3C <type> <length> <length bytes of data> <checksum> 0x55
# The checksum is the 8-bit sum of type, length and data bytes.
LEADER_BYTE = 0x55
SYNC_BYTE = 0x3C
TRAILER_BYTE = 0x55
# two-byte sync marker as seen in a 16-bit window with the last bit read on top
SYNC_WORD = LEADER_BYTE | SYNC_BYTE << 8
LEADER_LENGTH = 128

# block types
NAMEFILE_BLOCK = 0x00
DATA_BLOCK = 0x01
EOF_BLOCK = 0xFF

# longest payload a length byte can describe
MAX_BLOCK_LENGTH = 255

# file types
BASIC_FILE = 0
DATA_FILE = 1
ML_FILE = 2
TEXT_FILE = 3
FILE_TYPE_NAMES = {
    BASIC_FILE: 'program',
    DATA_FILE: 'data',
    ML_FILE: 'machine language',
    TEXT_FILE: 'text',
}

# data type flag
BINARY = 0x00
ASCII = 0xFF

# gap flag
NO_GAP = 0x00
GAP = 0xFF

# namefile layout: filename, file type, ascii flag, gap flag, load address, exec address
NAMEFILE_FORMAT = '>8sBBBHH'
NAMEFILE_LENGTH = struct.calcsize(NAMEFILE_FORMAT)
# the addresses may be missing on non-machine-language files
NAMEFILE_MIN_LENGTH = 11


def checksum(block_type, data):
    """Calculate 8-bit checksum over block type, length and data."""
    return (block_type + len(data) + sum(bytearray(data))) & 0xff

def normalise_name(name):
    """Convert filename to 8 bytes, left justified and space filled."""
    if not isinstance(name, bytes):
        try:
            name = name.encode('ascii')
        except UnicodeEncodeError:
            raise BadFileNameError(name)
    if len(name) > 8:
        raise BadFileNameError(name.decode('ascii', 'replace'))
    return name.ljust(8, b' ')


class Block(object):
    """Block of data on tape."""

    def __init__(self, block_type, data=b''):
        """Initialise block."""
        if len(data) > MAX_BLOCK_LENGTH:
            raise ValueError('block data too long: %d bytes' % (len(data),))
        self.block_type = block_type
        self.data = bytes(data)

    def __repr__(self):
        """Debugging representation."""
        return 'Block(%#04x, %r)' % (self.block_type, self.data)

    def __eq__(self, other):
        """Blocks are equal if type and data are."""
        if not isinstance(other, Block):
            return NotImplemented
        return (self.block_type, self.data) == (other.block_type, other.data)

    def __len__(self):
        """Length of the block data."""
        return len(self.data)

    @property
    def checksum(self):
        """Checksum as written on tape."""
        return checksum(self.block_type, self.data)


class DirEntry(object):
    """Directory entry, as stored in a namefile block."""

    def __init__(
            self, filename, file_type=BASIC_FILE, ascii_flag=False, gap_flag=False,
            load_address=0, exec_address=0
        ):
        """Initialise directory entry."""
        self.filename = normalise_name(filename)
        self.file_type = file_type
        self.ascii_flag = bool(ascii_flag)
        self.gap_flag = bool(gap_flag)
        if not (0 <= load_address <= 0xffff and 0 <= exec_address <= 0xffff):
            raise ValueError(
                'addresses must be in range 0--0xffff, not %r, %r' % (load_address, exec_address)
            )
        self.load_address = load_address
        self.exec_address = exec_address

    def __repr__(self):
        """Debugging representation."""
        return (
            'DirEntry(%r, file_type=%d, ascii_flag=%r, gap_flag=%r, '
            'load_address=%#06x, exec_address=%#06x)' % (
                self.filename, self.file_type, self.ascii_flag, self.gap_flag,
                self.load_address, self.exec_address
            )
        )

    def __str__(self):
        """Catalog line: name, type, data type, gap flag and addresses."""
        line = '%-8s  %d  %s  %s' % (
            self.name, self.file_type, 'A' if self.ascii_flag else 'B',
            'G' if self.gap_flag else 'C'
        )
        if self.file_type == ML_FILE:
            line += '  %04X  %04X' % (self.load_address, self.exec_address)
        return line

    def __eq__(self, other):
        """Entries are equal if all fields are."""
        if not isinstance(other, DirEntry):
            return NotImplemented
        return vars(self) == vars(other)

    @property
    def name(self):
        """Filename without padding."""
        return self.filename.rstrip(b' ').decode('latin-1')

    @property
    def type_name(self):
        """Description of the file type."""
        return FILE_TYPE_NAMES.get(self.file_type, 'unknown')

    @classmethod
    def from_bytes(cls, data):
        """Parse namefile block data."""
        if len(data) < NAMEFILE_MIN_LENGTH:
            raise FormatError('namefile block too short: %d bytes' % (len(data),))
        data = bytes(data[:NAMEFILE_LENGTH]).ljust(NAMEFILE_LENGTH, b'\0')
        filename, file_type, ascii_flag, gap_flag, load, exe = struct.unpack(
            NAMEFILE_FORMAT, data
        )
        return cls(filename, file_type, ascii_flag == ASCII, gap_flag == GAP, load, exe)

    def to_bytes(self):
        """Build namefile block data."""
        return struct.pack(
            NAMEFILE_FORMAT, self.filename, self.file_type,
            ASCII if self.ascii_flag else BINARY, GAP if self.gap_flag else NO_GAP,
            self.load_address, self.exec_address
        )


class BlockReader(object):
    """Assemble blocks from a tape bit stream."""

    def __init__(self, bitstream, sync_limit=0):
        """Initialise block reader; sync_limit bounds the bits scanned per block."""
        self._bits = bitstream
        self._sync_limit = sync_limit

    def find_sync(self):
        """Read bits until the sync marker is found."""
        window = 0
        count = 0
        while True:
            window = (window >> 1) | (self._bits.read_bit() << 15)
            count += 1
            if count >= 16 and window == SYNC_WORD:
                return
            if self._sync_limit and count >= self._sync_limit:
                raise FramingError('no sync marker within %d bits' % (count,))

    def read_block(self):
        """Read the next block of any type."""
        self.find_sync()
        try:
            block_type = self._bits.read_byte()
            length = self._bits.read_byte()
            data = bytes(bytearray(self._bits.read_byte() for _ in range(length)))
            given = self._bits.read_byte()
        except EndOfTape:
            raise TruncatedError('end of tape inside block')
        computed = checksum(block_type, data)
        if given != computed:
            logging.warning(
                '%sChecksum failed on block type %02x, required: %02x realised: %02x',
                timestamp(self._bits.counter()), block_type, given, computed
            )
            raise ChecksumError(given, computed, block_type)
        try:
            trailer = self._bits.read_byte()
        except EndOfTape:
            logging.debug('%sMissing trailer after last block', timestamp(self._bits.counter()))
        else:
            if trailer != TRAILER_BYTE:
                raise FramingError('bad trailer byte %02x' % (trailer,))
        return Block(block_type, data)

    def read_dir_entry(self):
        """Play until a namefile block is found."""
        while True:
            try:
                block = self.read_block()
            except ChecksumError as e:
                if e.block_type == NAMEFILE_BLOCK:
                    raise
                logging.warning(
                    '%sSkipped damaged block of type %02x',
                    timestamp(self._bits.counter()), e.block_type
                )
                continue
            if block.block_type == NAMEFILE_BLOCK:
                return DirEntry.from_bytes(block.data)
            logging.debug(
                '%sSkipped block of type %02x', timestamp(self._bits.counter()), block.block_type
            )


class BlockWriter(object):
    """Write framed blocks to a tape bit stream."""

    def __init__(self, bitstream):
        """Initialise block writer."""
        self._bits = bitstream

    def write_leader(self, length=LEADER_LENGTH):
        """Write the leader."""
        for _ in range(length):
            self._bits.write_byte(LEADER_BYTE)

    def write_block(self, block_type, data=b''):
        """Write a framed block."""
        block = Block(block_type, data)
        for byte in bytearray((LEADER_BYTE, SYNC_BYTE, block_type, len(block.data))):
            self._bits.write_byte(byte)
        for byte in bytearray(block.data):
            self._bits.write_byte(byte)
        self._bits.write_byte(block.checksum)
        self._bits.write_byte(TRAILER_BYTE)

    def write_dir_entry(self, entry):
        """Write a namefile block."""
        self.write_block(NAMEFILE_BLOCK, entry.to_bytes())
