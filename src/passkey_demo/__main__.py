"""Allow ``python -m passkey_demo``."""

import sys

from passkey_demo.cli import main

sys.exit(main())
