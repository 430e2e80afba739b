import sys

from pactlayer.cli import main

sys.exit(main())
