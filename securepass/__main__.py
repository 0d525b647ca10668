import sys

from securepass.main import main

sys.exit(main())
