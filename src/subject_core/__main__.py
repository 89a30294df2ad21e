from subject_core.cli import main

raise SystemExit(main())
