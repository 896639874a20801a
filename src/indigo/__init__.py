"""
Indigo: a personal AI companion that keeps its memories on your devices.

Chat, memories, journal, profiles and settings live locally. The cloud
only ever sees ciphertext: every category is encrypted on-device before
it is uploaded, with a passphrase that never leaves the device.
"""

import os

__version__ = "0.1.0"

INDIGO_HOME = os.environ.get("INDIGO_HOME", "~/.indigo")
