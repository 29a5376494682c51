# Copyright (C) 2024 The sigsim developers
# Distributed under the MIT software license, see the accompanying
# file LICENCE or http://www.opensource.org/licenses/mit-license.php

SIGSIM_VERSION = '0.3.0'     # version of the sigsim package

# largest bit width of an integer the arithmetic layer works with
WORD_BIT_LENGTH = 64
