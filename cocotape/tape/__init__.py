"""
cocotape - tape
Cassette tape images: bit streams, blocks and paths

(c) 2015--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

from .path import open, create, close, TapePath
from .path import READ, WRITE, UPDATE, RAW, CAS, WAV
from .blocks import Block, DirEntry
