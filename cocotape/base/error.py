"""
cocotape - error.py
Error constants and exceptions

(c) 2013--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import logging
from contextlib import contextmanager


# error constants
FILE_NOT_FOUND = 53
BAD_FILE_MODE = 54
DEVICE_IO_ERROR = 57
BAD_FILE_NAME = 64
# 65--79
UNKNOWN_FORMAT = 80
BAD_HEADER = 81
FRAMING_ERROR = 82
CHECKSUM_ERROR = 83
END_OF_TAPE = 84
TRUNCATED_BLOCK = 85


MESSAGES = {
    53: 'File not found',
    54: 'Bad file mode',
    57: 'Device I/O error',
    64: 'Bad file name',
    80: 'Unknown tape image format',
    81: 'Bad image header',
    82: 'Framing error',
    83: 'Checksum error',
    84: 'End of tape',
    85: 'Unexpected end of tape',
}


class TapeError(Exception):
    """Cassette image error."""

    err = DEVICE_IO_ERROR
    default_message = 'Unprintable error'

    def __init__(self, detail=''):
        """Initialise error."""
        Exception.__init__(self, detail)
        self.detail = detail
        self.message = MESSAGES.get(self.err, self.default_message)

    def __str__(self):
        """String representation of exception."""
        if self.detail:
            return '%s: %s' % (self.message, self.detail)
        return self.message


class TapeFileNotFound(TapeError):
    err = FILE_NOT_FOUND

class BadFileModeError(TapeError):
    err = BAD_FILE_MODE

class BadFileNameError(TapeError):
    err = BAD_FILE_NAME

class UnknownFormatError(TapeError):
    err = UNKNOWN_FORMAT

class FormatError(TapeError):
    err = BAD_HEADER

class FramingError(TapeError):
    err = FRAMING_ERROR

class EndOfTape(TapeError):
    err = END_OF_TAPE

class TruncatedError(TapeError):
    err = TRUNCATED_BLOCK


class ChecksumError(TapeError):
    """Block checksum does not match its contents."""

    err = CHECKSUM_ERROR

    def __init__(self, given, computed, block_type=None):
        """Initialise error."""
        TapeError.__init__(
            self, 'required: %02x realised: %02x' % (given, computed)
        )
        self.given = given
        self.computed = computed
        self.block_type = block_type


@contextmanager
def safe_io():
    """Catch and translate I/O errors."""
    try:
        yield
    except FileNotFoundError as e:
        raise TapeFileNotFound(str(e))
    except EnvironmentError as e:
        logging.warning('I/O error on tape image access: %s', e)
        raise TapeError(str(e))
