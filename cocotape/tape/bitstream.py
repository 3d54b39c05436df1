"""
cocotape - tape.bitstream
Cassette image bit streams

(c) 2015--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import struct
import logging

import numpy as np

from ..base.error import EndOfTape, FormatError, safe_io
from ..config import AUTO, ODD, EVEN


# Color Computer cassette tones: one cycle of 1200 Hz for a 0 bit, of 2400 Hz for a 1 bit
FREQUENCIES = (1200, 2400)

# RIFF format tags for uncompressed PCM
WAVE_FORMAT_PCM = 0x0001
WAVE_FORMAT_EXTENSIBLE = 0xFFFE

# amplitude of synthesised square waves, as a fraction of full scale
WRITE_AMPLITUDE = 0.75


class TapeBitStream(object):
    """Cassette tape bitstream interface."""

    def __enter__(self):
        """Context guard."""
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        """Context guard."""
        self.close()

    def counter(self):
        """Position on tape in seconds."""
        return 0

    def tell(self):
        """Position in the image (stub)."""
        return 0

    def read_bit(self):
        """Read the next bit (stub)."""
        raise NotImplementedError()

    def read_bits(self, count):
        """Read count bits; the first bit read ends up in the least significant position."""
        value = 0
        for i in range(count):
            value |= self.read_bit() << i
        return value

    def read_byte(self):
        """Read a byte from the tape."""
        return self.read_bits(8)

    def write_bit(self, bit):
        """Write the next bit (stub)."""
        raise NotImplementedError()

    def write_byte(self, byte):
        """Write a byte to tape image, least significant bit first."""
        for i in range(8):
            self.write_bit((byte >> i) & 1)

    def write_pause(self, milliseconds):
        """Write pause to tape image (stub)."""

    def flush(self):
        """Write remaining bits to tape (stub)."""

    def close(self):
        """Finalise the image; the caller releases the underlying file."""
        self.flush()


##############################################################################


class CASBitStream(TapeBitStream):
    """CAS-file cassette image bit stream."""

    def __init__(self, cas, start_bit=0):
        """Initialise bit stream on an open binary CAS file."""
        TapeBitStream.__init__(self)
        self._cas = cas
        # CAS-files aren't necessarily byte aligned
        self.start_byte, self.start_bit = divmod(start_bit, 8)
        self.current_byte, self.current_bit = self.start_byte, self.start_bit
        # byte currently being read
        self.cas_byte = None
        # bits waiting to be written
        self._out_byte, self._out_count = 0, 0

    def counter(self):
        """Time stamp in seconds."""
        # approximate: average 625 us per bit
        return (self.current_byte * 8 + self.current_bit) * 625 / 1000000.

    def tell(self):
        """Byte and bit position of the next bit to be read."""
        return self.current_byte, self.current_bit

    def read_bit(self):
        """Read the next bit."""
        if self.cas_byte is None:
            with safe_io():
                self._cas.seek(self.current_byte)
                byte = self._cas.read(1)
            if not byte:
                raise EndOfTape()
            self.cas_byte = ord(byte)
        bit = (self.cas_byte >> self.current_bit) & 1
        self.current_bit += 1
        if self.current_bit == 8:
            self.current_byte += 1
            self.current_bit = 0
            self.cas_byte = None
        return bit

    def write_bit(self, bit):
        """Write a bit at the end of the image."""
        self._out_byte |= (bit & 1) << self._out_count
        self._out_count += 1
        if self._out_count == 8:
            self._write_out()

    def flush(self):
        """Write remaining bits to tape, padding the last byte with zero bits."""
        if self._out_count:
            self._write_out()
        with safe_io():
            self._cas.flush()

    def _write_out(self):
        """Append the write buffer to the image."""
        with safe_io():
            self._cas.seek(0, 2)
            self._cas.write(bytes((self._out_byte,)))
        self._out_byte, self._out_count = 0, 0


##############################################################################

# The header of a WAV (RIFF) file is usually 44 bytes long:
#
#    Positions  Sample Value    Description
#    1 - 4      "RIFF"          Marks the file as a riff file.
#    5 - 8      File size       Size of the overall file - 8 bytes (32-bit integer).
#    9 -12      "WAVE"          File Type Header.
#    13-16      "fmt "          Format chunk marker. Includes trailing space.
#    17-20      16              Length of format data as listed above
#    21-22      1               Type of format (1 is PCM) - 2 byte integer
#    23-24      1               Number of Channels - 2 byte integer
#    25-28      44100           Sample Rate - 32 bit integer.
#    29-32      44100           (Sample Rate * BitsPerSample * Channels) / 8.
#    33-34      1               (BitsPerSample * Channels) / 8.
#    35-36      8               Bits per sample
#    37-40      "data"          "data" chunk header. Marks the beginning of the data section.
#    41-44      File size       Size of the data section.
#
# Other chunks may occur in between; each chunk is padded to an even length.
# 8-bit samples are unsigned, wider samples are signed little-endian.

# Color Computer cassette signal:
# A 0 bit is one cycle of 1200 Hz, a 1 bit one cycle of 2400 Hz; bytes are
# sent least significant bit first. A recording may start on either half-cycle,
# the wave parity determines which crossing starts a cycle.


class WAVBitStream(TapeBitStream):
    """WAV-file cassette image bit stream."""

    # frames per read buffer
    buf_len = 4096

    def __init__(self, wav, settings, create=False, framerate=44100, sampwidth=1):
        """Initialise bit stream on an open binary WAV file."""
        TapeBitStream.__init__(self)
        self._wav = wav
        # demodulation parameters
        self.threshold = settings.threshold
        self.frequency = settings.frequency
        self.parity = settings.parity
        self.start_sample = settings.start_sample
        with safe_io():
            self._wav.seek(0, 2)
            empty = not self._wav.tell()
        if empty and create:
            self.sample_rate, self.bits_per_sample, self.channels = framerate, sampwidth*8, 1
            self._write_wav_header()
        else:
            self._read_wav_header()
        self.sample_width = (self.bits_per_sample + 7) // 8
        self.frame_size = self.sample_width * self.channels
        self.total_samples = self.data_length // self.frame_size
        # cycles shorter than this number of samples are 1 bits
        self.cycle_cut = self.sample_rate / self.frequency
        # cycles longer than this are silence
        self.cycle_max = 4 * self.cycle_cut
        self.current_sample = min(self.start_sample, self.total_samples)
        # sample positions of the last two canonical crossings
        self.last_crossing, self.crossing = None, None
        self._read_cycle = self._gen_read_cycle()
        # square wave for writing
        self._half_lengths = [
            max(1, int(round(self.sample_rate / _freq / 2.))) for _freq in FREQUENCIES
        ]
        self._high = self._frame(WRITE_AMPLITUDE)
        self._low = self._frame(-WRITE_AMPLITUDE)
        self._zero = self._frame(0)
        self._dirty = False

    def counter(self):
        """Time stamp in seconds."""
        return self.current_sample / float(self.sample_rate)

    def tell(self):
        """Sample position of the next sample to be read."""
        return self.current_sample

    def read_bit(self):
        """Read the next bit."""
        while True:
            try:
                length = next(self._read_cycle)
            except StopIteration:
                raise EndOfTape()
            if length <= self.cycle_max:
                break
            logging.debug('%sSilence of %d samples', timestamp(self.counter()), length)
        return 1 if length < self.cycle_cut else 0

    def _gen_read_cycle(self):
        """Generator to find canonical crossings and yield cycle lengths in samples."""
        level = 0
        half_seen = False
        # sample position where the second half-cycle starts
        half_start = None
        for sample in self._gen_samples():
            # hysteresis: values within the threshold keep the current level
            if sample > self.threshold:
                new_level = 1
            elif sample < -self.threshold:
                new_level = -1
            else:
                continue
            if new_level == level:
                continue
            if not level and self.parity == AUTO:
                # first excursion out of silence starts a cycle
                self.parity = EVEN if new_level > 0 else ODD
                logging.debug(
                    '%sWave parity resolved as %s', timestamp(self.counter()), self.parity
                )
            level = new_level
            if (level > 0) != (self.parity == EVEN):
                # second half-cycle starts
                half_seen = self.crossing is not None
                half_start = self.current_sample
                continue
            self.last_crossing, self.crossing = self.crossing, self.current_sample
            if self.last_crossing is not None:
                half_seen = False
                yield self.crossing - self.last_crossing
        # end of data closes a cycle only if its second half is as long as its first
        if half_seen:
            first_half = half_start - self.crossing
            if self.current_sample - half_start >= first_half - max(1, first_half // 3):
                self.last_crossing, self.crossing = self.crossing, self.current_sample
                yield self.crossing - self.last_crossing
            else:
                logging.debug(
                    '%sIncomplete cycle at end of data', timestamp(self.counter())
                )

    def _gen_samples(self):
        """Generator yielding normalised samples of the first channel."""
        while self.current_sample < self.total_samples:
            count = min(self.buf_len, self.total_samples - self.current_sample)
            with safe_io():
                self._wav.seek(self.data_start + self.current_sample * self.frame_size)
                frames = self._wav.read(count * self.frame_size)
            count = len(frames) // self.frame_size
            if not count:
                logging.warning('WAV data chunk shorter than declared')
                return
            for sample in self._to_samples(frames[:count * self.frame_size]).tolist():
                self.current_sample += 1
                yield sample

    def _to_samples(self, frames):
        """Convert frames to amplitudes in [-1, 1)."""
        frames = np.frombuffer(frames, dtype=np.uint8).reshape(-1, self.frame_size)
        if self.sample_width == 1:
            return (frames[:, 0].astype(np.float64) - 128.) / 128.
        # note that we simply throw away all but the two most significant bytes
        msb = frames[:, self.sample_width-1].astype(np.int8).astype(np.float64)
        lsb = frames[:, self.sample_width-2].astype(np.float64)
        return (msb * 256. + lsb) / 32768.

    def _frame(self, amplitude):
        """Encode a frame at the given amplitude."""
        bits = self.sample_width * 8
        value = int(round(amplitude * ((1 << (bits-1)) - 1)))
        if self.sample_width == 1:
            sample = bytes((value + 128,))
        else:
            sample = value.to_bytes(self.sample_width, 'little', signed=True)
        return sample * self.channels

    def write_bit(self, bit):
        """Write one square-wave cycle for the bit."""
        half_length = self._half_lengths[bit & 1]
        self._write_frames(self._high * half_length + self._low * half_length)

    def write_pause(self, milliseconds):
        """Write a pause of given length to the tape."""
        # a short pulse closes the last cycle; the first cycle after the pause is lost to silence
        self._write_frames(
            self._high * self._half_lengths[1]
            + self._zero * (milliseconds * self.sample_rate // 1000)
        )

    def _write_frames(self, frames):
        """Append frames to the data chunk."""
        with safe_io():
            if not self._dirty:
                # anything after the data chunk gets overwritten
                self._wav.seek(self.data_start + self.data_length)
                self._wav.truncate()
                self._dirty = True
            self._wav.seek(self.data_start + self.data_length)
            self._wav.write(frames)
        self.data_length += len(frames)
        self.total_samples = self.data_length // self.frame_size

    def flush(self):
        """Write file length fields."""
        if not self._dirty:
            return
        with safe_io():
            end_pos = self.data_start + self.data_length
            self._wav.seek(end_pos)
            self._wav.truncate()
            if self.data_length % 2:
                # chunks are word aligned
                self._wav.write(b'\0')
                end_pos += 1
            self.riff_size = end_pos - 8
            self._wav.seek(0)
            self._wav.write(struct.pack('<4sL', b'RIFF', self.riff_size))
            self._wav.seek(self.data_start - 8)
            self._wav.write(struct.pack('<4sL', b'data', self.data_length))
            self._wav.flush()
        self._dirty = False

    def _read_wav_header(self):
        """Read RIFF WAV header."""
        with safe_io():
            self._wav.seek(0, 2)
            file_length = self._wav.tell()
            self._wav.seek(0)
            header = self._wav.read(12)
        if len(header) < 12:
            raise FormatError('file too short for RIFF header')
        riff, self.riff_size, wave = struct.unpack('<4sL4s', header)
        if riff != b'RIFF' or wave != b'WAVE':
            raise FormatError('not a RIFF/WAVE file')
        self.sample_rate = 0
        pos = 12
        while True:
            with safe_io():
                self._wav.seek(pos)
                chunk_header = self._wav.read(8)
            if len(chunk_header) < 8:
                if self.sample_rate:
                    raise FormatError('no data chunk found')
                raise FormatError('no fmt chunk found')
            name, size = struct.unpack('<4sL', chunk_header)
            if name == b'fmt ':
                with safe_io():
                    fmt = self._wav.read(16)
                if len(fmt) < 16:
                    raise FormatError('fmt chunk too short')
                (
                    format_tag, self.channels, self.sample_rate, _, _, self.bits_per_sample
                ) = struct.unpack('<HHLLHH', fmt)
                if format_tag not in (WAVE_FORMAT_PCM, WAVE_FORMAT_EXTENSIBLE):
                    raise FormatError('not in uncompressed PCM format: %#x' % (format_tag,))
                if not (self.channels and self.sample_rate and self.bits_per_sample):
                    raise FormatError('invalid fmt chunk')
            elif name == b'data':
                if not self.sample_rate:
                    raise FormatError('data chunk found before fmt chunk')
                self.data_start = pos + 8
                # some writers leave the length field zero or too large
                available = file_length - self.data_start
                self.data_length = size if 0 < size <= available else available
                return
            else:
                logging.debug('Skipping %r chunk in WAV file', name)
            pos += 8 + size + (size % 2)

    def _write_wav_header(self):
        """Write RIFF WAV header."""
        block_align = self.channels * self.bits_per_sample // 8
        with safe_io():
            self._wav.seek(0)
            # length is corrected at close
            self._wav.write(struct.pack('<4sL4s', b'RIFF', 36, b'WAVE'))
            self._wav.write(struct.pack(
                '<4sLHHLLHH', b'fmt ', 16,
                WAVE_FORMAT_PCM, self.channels, self.sample_rate,
                self.sample_rate * block_align, block_align, self.bits_per_sample
            ))
            # length is corrected at close
            self._wav.write(struct.pack('<4sL', b'data', 0))
        self.riff_size = 36
        self.data_start = 44
        self.data_length = 0


##############################################################################
# supporting functions

def hms(seconds):
    """Return elapsed cassette time at given frame."""
    m, s = divmod(seconds, 60)
    h, m = divmod(m, 60)
    return h, m, s

def timestamp(counter):
    """Time stamp."""
    return '[%d:%02d:%02d] ' % hms(counter)
