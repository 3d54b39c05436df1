"""
cocotape - Color Computer cassette tape image codec

(c) 2013--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

from .data import NAME, VERSION, AUTHOR, COPYRIGHT
from .config import TapeSettings
from .base.error import (
    TapeError, TapeFileNotFound, BadFileModeError, BadFileNameError, UnknownFormatError,
    FormatError, FramingError, ChecksumError, EndOfTape, TruncatedError
)
from .tape import open, create, close, TapePath, Block, DirEntry
from .tape import READ, WRITE, UPDATE, RAW, CAS, WAV
from .tape.blocks import (
    NAMEFILE_BLOCK, DATA_BLOCK, EOF_BLOCK, BASIC_FILE, DATA_FILE, ML_FILE, TEXT_FILE,
    BINARY, ASCII
)

__version__ = VERSION
