from pgstat_collector.cli import main

raise SystemExit(main())
