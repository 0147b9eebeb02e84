"""Allow ``python -m chutes_auth``."""

import sys

from .cli import main


sys.exit(main())
