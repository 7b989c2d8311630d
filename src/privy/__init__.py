"""
Privy — encrypted directories in a plain git repository.

Every top-level directory of the project is packed, sealed to the
project's public key, and committed as a bundle. The plaintext
directories never leave the machine; git only ever sees the bundles.
"""

import os

__version__ = "0.1.0"

PROJECT_DIR = os.environ.get("PRIVY_PROJECT_DIR", ".")
