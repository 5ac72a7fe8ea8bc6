# scary_pumpkin/__main__.py

from scary_pumpkin.main import main

raise SystemExit(main())
