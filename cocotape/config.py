"""
cocotape - config.py
Tape demodulation and framing settings

(c) 2013--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import io
import logging
import configparser


# wave parity: which crossing direction delimits a cycle
AUTO = 'auto'
ODD = 'odd'
EVEN = 'even'
PARITIES = (AUTO, ODD, EVEN)

# config file section
CONFIG_SECTION = 'cecb'


def _check_positive(arg):
    """Check if frequency argument is acceptable."""
    return arg > 0

def _check_nonnegative(arg):
    """Check if numeric argument is acceptable."""
    return arg >= 0

def _check_threshold(arg):
    """Check if threshold is within the normalised amplitude range."""
    return 0 <= arg < 1


ARGUMENTS = {
    # normalised amplitude below which samples are treated as noise
    'threshold': {'type': 'float', 'default': 0., 'check': _check_threshold},
    # frequency in Hz separating 1-bit cycles (above) from 0-bit cycles (below)
    'frequency': {'type': 'float', 'default': 1800., 'check': _check_positive},
    'parity': {'type': 'string', 'choices': PARITIES, 'default': AUTO},
    # WAV: sample; CAS: bit offset from start of image
    'start-sample': {'type': 'int', 'default': 0, 'check': _check_nonnegative},
    # maximum number of bits scanned for a sync marker; 0 means up to end of tape
    'sync-limit': {'type': 'int', 'default': 0, 'check': _check_nonnegative},
}


class TapeSettings(object):
    """Settings copied into each tape path when it is opened or created."""

    def __init__(
            self, threshold=0., frequency=1800., parity=AUTO,
            start_sample=0, sync_limit=0
        ):
        """Initialise and validate settings."""
        self.threshold = float(threshold)
        self.frequency = float(frequency)
        self.parity = parity.lower()
        self.start_sample = int(start_sample)
        self.sync_limit = int(sync_limit)
        if not _check_threshold(self.threshold):
            raise ValueError('threshold must be in [0, 1), not %r' % (threshold,))
        if self.frequency <= 0:
            raise ValueError('frequency must be positive, not %r' % (frequency,))
        if self.parity not in PARITIES:
            raise ValueError(
                'parity must be one of %s, not %r' % (', '.join(PARITIES), parity)
            )
        if self.start_sample < 0 or self.sync_limit < 0:
            raise ValueError('start sample and sync limit must not be negative')

    def __repr__(self):
        """Debugging representation."""
        return (
            'TapeSettings(threshold=%r, frequency=%r, parity=%r, start_sample=%r, sync_limit=%r)'
            % (self.threshold, self.frequency, self.parity, self.start_sample, self.sync_limit)
        )

    def __eq__(self, other):
        """Settings are equal if all their values are."""
        if not isinstance(other, TapeSettings):
            return NotImplemented
        return vars(self) == vars(other)

    def copy(self, **changes):
        """Return an independent copy, optionally with some values changed."""
        values = dict(vars(self))
        values.update(changes)
        return TapeSettings(**values)

    @classmethod
    def from_options(cls, options):
        """Build settings from a dict of option strings; unusable values are ignored."""
        kwargs = {}
        for name, strval in options.items():
            name = name.lower().replace('_', '-')
            if name not in ARGUMENTS:
                logging.warning('Ignored unrecognised tape option `%s`', name)
                continue
            value = _parse_type(name, strval)
            if value is not None:
                kwargs[name.replace('-', '_')] = value
        return cls(**kwargs)

    @classmethod
    def from_config_file(cls, config_file, section=CONFIG_SECTION):
        """Read settings from a section of an INI file."""
        return cls.from_options(_read_config_file(config_file).get(section, {}))


def _read_config_file(config_file):
    """Read config file into a dict of sections."""
    try:
        config = configparser.RawConfigParser(allow_no_value=True)
        # use utf_8_sig to ignore a BOM if it's at the start of the file
        with io.open(config_file, 'r', encoding='utf_8_sig', errors='replace') as f:
            config.read_file(f)
    except (configparser.Error, IOError):
        logging.warning(
            'Error in configuration file `%s`. Configuration not loaded.', config_file
        )
        return {}
    return {header: dict(config.items(header)) for header in config.sections()}


##############################################################################
# type conversions

def _parse_type(name, arg):
    """Convert option string to required type; None if not acceptable."""
    if arg is None:
        return None
    arg = arg.strip()
    argdef = ARGUMENTS[name]
    if argdef['type'] == 'int':
        value = _to_number(name, arg, int)
    elif argdef['type'] == 'float':
        value = _to_number(name, arg, float)
    else:
        value = arg.lower() if 'choices' in argdef else arg
    if value is None:
        return None
    if 'choices' in argdef and value not in argdef['choices']:
        logging.warning(
            'Value `%s=%s` ignored; should be one of (`%s`)',
            name, arg, '`, `'.join(argdef['choices'])
        )
        return None
    if 'check' in argdef and not argdef['check'](value):
        logging.warning('Value `%s=%s` ignored; not recognised', name, arg)
        return None
    return value

def _to_number(name, strval, number_type):
    """Convert numeric string to int or float."""
    if strval:
        try:
            return number_type(strval)
        except ValueError:
            logging.warning(
                'Option `%s=%s` ignored: value should be a number', name, strval
            )
    return None

