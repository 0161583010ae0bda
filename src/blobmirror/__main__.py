"""Allow ``python -m blobmirror``."""

import sys

from blobmirror.cli import main

sys.exit(main())
