from amcp.cli import main

raise SystemExit(main())
