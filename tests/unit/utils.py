"""
cocotape tests.utils
Shared testing utilities

(c) 2020--2023 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import unittest
import os
import shutil
import struct
from unittest import main as run_tests


class TestCase(unittest.TestCase):
    """Base class for test cases."""

    tag = u'unit'

    def __init__(self, *args, **kwargs):
        """Define output dir name."""
        unittest.TestCase.__init__(self, *args, **kwargs)
        here = os.path.dirname(os.path.abspath(__file__))
        self._dir = os.path.join(here, u'output', self.tag)

    def setUp(self):
        """Ensure output directory exists and is empty."""
        try:
            shutil.rmtree(self._dir)
        except EnvironmentError:
            pass
        if not os.path.isdir(self._dir):
            os.makedirs(self._dir)

    def output_path(self, *names):
        """Output file name."""
        return os.path.join(self._dir, *names)

    def write_file(self, name, data):
        """Write bytes to an output file and return its path."""
        path = self.output_path(name)
        with open(path, 'wb') as f:
            f.write(data)
        return path


def frame_block(block_type, data):
    """Frame a block as it appears on tape."""
    data = bytes(data)
    chk = (block_type + len(data) + sum(data)) & 0xff
    return bytes((0x55, 0x3c, block_type, len(data))) + data + bytes((chk, 0x55))

def riff(fmt, data, extra_chunks=b''):
    """Build a RIFF/WAVE file from fmt chunk contents and sample data."""
    body = b'WAVE' + struct.pack('<4sL', b'fmt ', len(fmt)) + fmt + extra_chunks
    body += struct.pack('<4sL', b'data', len(data)) + data
    if len(data) % 2:
        body += b'\0'
    return struct.pack('<4sL', b'RIFF', len(body)) + body

def pcm_format(channels=1, rate=44100, bits=8):
    """Build a PCM fmt chunk."""
    align = channels * bits // 8
    return struct.pack('<HHLLHH', 1, channels, rate, rate * align, align, bits)
