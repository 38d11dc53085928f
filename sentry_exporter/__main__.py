from sentry_exporter.server import main

raise SystemExit(main())
