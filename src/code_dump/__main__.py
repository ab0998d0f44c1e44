from code_dump.cli import main

raise SystemExit(main())
