"""
cocotape tests.test_path
Tests for opening, reading and writing files on tape images

(c) 2020--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import os
import struct

import cocotape
from cocotape import (
    TapeSettings, TapeFileNotFound, BadFileModeError, BadFileNameError, UnknownFormatError,
    ChecksumError, Block, DirEntry
)
from cocotape.tape.path import parse_pathlist
from cocotape.tape.blocks import NAMEFILE_BLOCK, DATA_BLOCK, EOF_BLOCK, ML_FILE, TEXT_FILE
from tests.unit.utils import TestCase, run_tests, frame_block


LEADER = b'\x55' * 128


def namefile(name, file_type=0, ascii_flag=0, gap_flag=0):
    """Framed namefile block."""
    return frame_block(
        NAMEFILE_BLOCK, name.ljust(8) + bytes((file_type, ascii_flag, gap_flag)) + bytes(4)
    )

def tape_file(name, *blocks, **kwargs):
    """Leader, namefile and framed data blocks."""
    return (
        LEADER + namefile(name, **kwargs) + LEADER
        + b''.join(frame_block(DATA_BLOCK, _data) for _data in blocks)
    )

EOF = frame_block(EOF_BLOCK, b'')


class TapePathReadTest(TestCase):
    """Reading files from CAS images."""

    tag = u'path_read'

    def test_read_file(self):
        """Find a file, read its data and reach end of file."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'\x01\x02\x03\x04'))
        with cocotape.open(image + ',TEST') as path:
            entry = path.dir_entry
            assert entry.filename == b'TEST    '
            assert entry.type_name == 'program'
            assert not entry.ascii_flag
            assert not entry.gap_flag
            assert path.container == cocotape.CAS
            assert not path.israw
            assert not path.get_eof()
            assert path.read(4) == b'\x01\x02\x03\x04'
            assert path.get_eof()
            assert path.get_position() == 4

    def test_read_past_end(self):
        """Short reads only at end of file."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'\x01\x02\x03\x04') + EOF)
        with cocotape.open(image + ',TEST') as path:
            assert path.read(10) == b'\x01\x02\x03\x04'
            assert path.get_eof()
            assert path.block_type == EOF_BLOCK
            assert path.read(10) == b''
            assert path.get_position() == 4

    def test_read_across_blocks(self):
        """Reads cross block boundaries; empty blocks are skipped."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'ABC', b'', b'DEF') + EOF)
        with cocotape.open(image + ',TEST') as path:
            assert path.read(2) == b'AB'
            assert path.read(3) == b'CDE'
            assert not path.get_eof()
            assert path.read(1) == b'F'
            assert path.get_eof()

    def test_readln(self):
        """Lines end at carriage returns, which are consumed."""
        image = self.write_file(
            'test.cas', tape_file(b'LINES', b'HELLO\rWO', b'RLD\r\rLAST', ascii_flag=0xff) + EOF
        )
        with cocotape.open(image + ',LINES') as path:
            assert path.dir_entry.ascii_flag
            assert path.readln(80) == b'HELLO'
            assert path.readln(80) == b'WORLD'
            assert path.readln(80) == b''
            assert path.readln(2) == b'LA'
            assert path.readln(80) == b'ST'
            assert path.get_eof()
            assert path.get_position() == 17

    def test_skip_files(self):
        """Files before the requested one are skipped; the next namefile ends the file."""
        data = (
            tape_file(b'FIRST', b'111') + EOF
            + tape_file(b'SECOND', b'222')
            + tape_file(b'THIRD', b'333') + EOF
        )
        image = self.write_file('test.cas', data)
        with cocotape.open(image + ',SECOND') as path:
            assert path.dir_entry.name == 'SECOND'
            assert path.read(10) == b'222'
            assert path.get_eof()
            assert path.block_type == NAMEFILE_BLOCK

    def test_skip_damaged_file(self):
        """A damaged block in a skipped file does not stop the search."""
        damaged = bytearray(frame_block(DATA_BLOCK, b'111'))
        damaged[-2] ^= 0x01
        data = (
            LEADER + namefile(b'FIRST') + LEADER + bytes(damaged) + EOF
            + tape_file(b'SECOND', b'222') + EOF
        )
        image = self.write_file('test.cas', data)
        with cocotape.open(image + ',SECOND') as path:
            assert path.read(10) == b'222'
        with cocotape.open(image) as path:
            assert [_entry.name for _entry in path.directory()] == ['FIRST', 'SECOND']

    def test_blocks_without_leader(self):
        """Namefile block followed directly by a data block and the end of the image."""
        data = namefile(b'TEST') + frame_block(DATA_BLOCK, b'\x01\x02\x03\x04')
        assert data[:4] == b'\x55\x3c\x00\x0f'
        image = self.write_file('test.cas', data)
        with cocotape.open(image) as path:
            entry = path.read_next_dir_entry()
            assert entry.name == 'TEST'
            assert entry.type_name == 'program'
            assert not entry.ascii_flag
            assert not entry.gap_flag
            assert path.read_next_block() == Block(DATA_BLOCK, b'\x01\x02\x03\x04')
        with cocotape.open(image + ',TEST') as path:
            assert path.read(4) == b'\x01\x02\x03\x04'
            assert path.get_eof()

    def test_not_found(self):
        """A file that is not on the tape is not found."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'data') + EOF)
        with self.assertRaises(TapeFileNotFound):
            cocotape.open(image + ',OTHER')

    def test_missing_image(self):
        """A missing image is not found."""
        with self.assertRaises(TapeFileNotFound):
            cocotape.open(self.output_path('missing.cas') + ',TEST')

    def test_deferred_error(self):
        """Errors met while reading ahead are raised once the data is consumed."""
        damaged = bytearray(frame_block(DATA_BLOCK, b'DEF'))
        damaged[-2] ^= 0x01
        image = self.write_file(
            'test.cas', tape_file(b'TEST', b'ABC') + bytes(damaged) + EOF
        )
        with cocotape.open(image + ',TEST') as path:
            assert path.read(3) == b'ABC'
            with self.assertRaises(ChecksumError):
                path.read(1)

    def test_raw(self):
        """Raw paths give block-level access only."""
        data = tape_file(b'ONE', b'1') + EOF + tape_file(b'TWO', b'22') + EOF
        image = self.write_file('test.cas', data)
        with cocotape.open(image) as path:
            assert path.israw
            with self.assertRaises(BadFileModeError):
                path.read(1)
            entry = path.read_next_dir_entry()
            assert entry.name == 'ONE'
            assert path.read_next_block() == Block(DATA_BLOCK, b'1')
            assert path.read_next_block() == Block(EOF_BLOCK)
            assert [_entry.name for _entry in path.directory()] == ['TWO']
        with cocotape.open(image + ',TWO', cocotape.READ | cocotape.RAW) as path:
            assert path.israw
            assert path.dir_entry is None

    def test_closed(self):
        """Closed paths can't be read; closing twice is harmless."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'data') + EOF)
        path = cocotape.open(image + ',TEST')
        cocotape.close(path)
        path.close()
        with self.assertRaises(ValueError):
            path.read(1)

    def test_settings_copied(self):
        """Paths hold their own copy of the settings."""
        image = self.write_file('test.cas', tape_file(b'TEST', b'data') + EOF)
        settings = TapeSettings(threshold=0.25)
        with cocotape.open(image + ',TEST', settings=settings) as path:
            settings.threshold = 0.5
            assert path.settings is not settings
            assert path.settings.threshold == 0.25

    def test_start_sample(self):
        """Reading a CAS image starts at the configured bit."""
        data = b'\x00\x00' + tape_file(b'TEST', b'data') + EOF
        image = self.write_file('test.cas', data)
        settings = TapeSettings(start_sample=13)
        with cocotape.open(image, settings=settings) as path:
            assert path.tape_position() == (1, 5)
            assert path.read_next_dir_entry().name == 'TEST'
        with cocotape.open(image + ',TEST', settings=settings) as path:
            assert path.read(4) == b'data'

    def test_classify(self):
        """Container is chosen by prefix, extension or contents."""
        data = tape_file(b'TEST', b'data') + EOF
        image = self.write_file('tape.bin', data)
        with cocotape.open(image + ',TEST') as path:
            assert path.container == cocotape.CAS
        with cocotape.open('CAS:' + image + ',TEST') as path:
            assert path.container == cocotape.CAS
        junk = self.write_file('junk.bin', b'\0' * 64)
        with self.assertRaises(UnknownFormatError):
            cocotape.open(junk + ',TEST')

    def test_parse_pathlist(self):
        """Pathlists are split into container, image and filename."""
        assert parse_pathlist('tape.cas') == (None, 'tape.cas', None)
        assert parse_pathlist('tape.cas,TEST') == (None, 'tape.cas', b'TEST    ')
        assert parse_pathlist('wav:dir,x/tape,PROG') == ('WAV', 'dir,x/tape', b'PROG    ')
        assert parse_pathlist('C:/tape.cas,') == (None, 'C:/tape.cas', None)
        with self.assertRaises(BadFileNameError):
            parse_pathlist('tape.cas,LONGFILENAME')


class TapePathWriteTest(TestCase):
    """Writing files to CAS and WAV images."""

    tag = u'path_write'

    def test_create_cas(self):
        """Created files have namefile, data and end-of-file blocks."""
        image = self.output_path('new.cas')
        with cocotape.create(image + ',NEW') as path:
            path.write(b'\x01\x02\x03\x04')
            assert path.get_position() == 4
        with open(image, 'rb') as f:
            data = f.read()
        expected = (
            LEADER + namefile(b'NEW') + LEADER
            + frame_block(DATA_BLOCK, b'\x01\x02\x03\x04') + EOF
        )
        assert data == expected

    def test_write_read_cas(self):
        """Data written to a CAS image is read back."""
        image = self.output_path('round.cas')
        payload = bytes(range(256)) * 3
        with cocotape.create(image + ',BIG', file_type=ML_FILE, load_address=0x0e00) as path:
            path.write(payload[:100])
            path.write(payload[100:])
        with cocotape.open(image + ',BIG') as path:
            assert path.dir_entry.file_type == ML_FILE
            assert path.dir_entry.load_address == 0x0e00
            assert path.read(len(payload) + 1) == payload
            assert path.get_eof()

    def test_append(self):
        """Files are appended to existing images."""
        image = self.output_path('two.cas')
        with cocotape.create(image + ',ONE', data_type=cocotape.ASCII) as path:
            path.writeln(b'FIRST LINE')
        with cocotape.create(image + ',TWO', file_type=TEXT_FILE) as path:
            path.write(b'second file')
        with cocotape.open(image + ',ONE') as path:
            assert path.dir_entry.ascii_flag
            assert path.readln(255) == b'FIRST LINE'
            assert path.get_eof()
        with cocotape.open(image + ',TWO') as path:
            assert path.read(255) == b'second file'
        with cocotape.open(image) as path:
            assert [_entry.name for _entry in path.directory()] == ['ONE', 'TWO']

    def test_write_read_wav(self):
        """Data written to a WAV image is read back."""
        image = self.output_path('round.wav')
        payload = b'WAVE DATA ' * 60
        with cocotape.create(image + ',WAVFILE', gap=True) as path:
            assert path.container == cocotape.WAV
            path.write(payload)
        with open(image, 'rb') as f:
            data = f.read()
        riff_size, = struct.unpack('<L', data[4:8])
        assert riff_size == len(data) - 8
        with cocotape.open(image + ',WAVFILE') as path:
            assert path.dir_entry.gap_flag
            assert path.read(len(payload)) == payload
            assert path.get_eof()
            assert path.block_type == EOF_BLOCK

    def test_raw_write(self):
        """Raw paths write framed blocks."""
        image = self.output_path('raw.cas')
        with cocotape.create(image, cocotape.WRITE | cocotape.RAW) as path:
            path.write_leader()
            path.write_block(NAMEFILE_BLOCK, DirEntry('RAW').to_bytes())
            path.write_block(DATA_BLOCK, b'raw data')
            path.write_block(EOF_BLOCK)
        with cocotape.open(image + ',RAW') as path:
            assert path.read(100) == b'raw data'

    def test_modes(self):
        """Operations outside the access mode are refused."""
        image = self.output_path('modes.cas')
        with cocotape.create(image + ',MODES') as path:
            with self.assertRaises(BadFileModeError):
                path.read(1)
            with self.assertRaises(BadFileModeError):
                path.write_block(DATA_BLOCK, b'')
        with cocotape.open(image + ',MODES') as path:
            with self.assertRaises(BadFileModeError):
                path.write(b'x')
        with self.assertRaises(BadFileModeError):
            cocotape.open(image + ',MODES', cocotape.WRITE)
        with self.assertRaises(BadFileModeError):
            cocotape.create(image + ',MODES', cocotape.READ)
        with self.assertRaises(BadFileNameError):
            cocotape.create(image)

    def test_unknown_extension(self):
        """New images need a known extension or prefix."""
        image = self.output_path('new.tap')
        with self.assertRaises(UnknownFormatError):
            cocotape.create(image + ',NEW')
        with cocotape.create('CAS:' + image + ',NEW') as path:
            path.write(b'x')
        assert os.path.getsize(image) > 0


if __name__ == '__main__':
    run_tests()
