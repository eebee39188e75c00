from subscriptions_app.cli import main

raise SystemExit(main())
