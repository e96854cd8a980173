import sys

from codex.cli import main

sys.exit(main())
