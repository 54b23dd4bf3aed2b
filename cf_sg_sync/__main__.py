import sys

from cf_sg_sync.main import main

sys.exit(main())
