"""Allow ``python -m harvester``."""

import sys

from harvester.core import main

sys.exit(main())
