#!/usr/bin/env python3
"""
cocotape install script

(c) 2015--2022 Rob Hagemans
This file is released under the GNU GPL version 3 or later.
"""

import os
import json
from io import open

from setuptools import find_packages, setup


###############################################################################
# get descriptions and version number

# file location
HERE = os.path.abspath(os.path.dirname(__file__))

# obtain metadata without importing the package
with open(os.path.join(HERE, 'cocotape', 'data', 'meta.json'), 'r') as meta:
    _METADATA = json.load(meta)
    VERSION = _METADATA['version']
    AUTHOR = _METADATA['author']


###############################################################################
# setup parameters

SETUP_OPTIONS = dict(
    name='cocotape',
    version=VERSION,
    author=AUTHOR,
    description='Color Computer cassette tape image (CAS and WAV) codec',
    license='GPLv3+',

    # contents
    # only include cocotape and its subpackages: exclude tests
    packages=find_packages(include=['cocotape', 'cocotape.*']),
    package_data={'cocotape.data': ['meta.json']},
    python_requires='>=3.9',
    install_requires=['numpy'],
    extras_require={'test': ['pytest']},
)

###############################################################################
# run the setup

# perform the installation
setup(**SETUP_OPTIONS)
