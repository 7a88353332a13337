import sys

from voicelist.app import main

sys.exit(main())
