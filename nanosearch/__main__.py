from nanosearch.cli import main

raise SystemExit(main())
