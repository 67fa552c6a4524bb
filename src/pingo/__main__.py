"""Allow running the demo plugin with ``python -m pingo``."""

import sys

from pingo.cli import main

sys.exit(main())
