# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

from .version import SIGSIM_VERSION
from .field import FiniteField
from .ec import Curve, Point, INFINITY, DEMO_CURVE_25
from .ecdsa import PrivateKey, PublicKey, Signature, generate_key
from .simple_config import SimpleConfig
from .logging import get_logger


__version__ = SIGSIM_VERSION

_logger = get_logger(__name__)
