import sys

from memsampler.cli import main

sys.exit(main())
