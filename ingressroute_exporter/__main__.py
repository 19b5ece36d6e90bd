from ingressroute_exporter.cli import main


raise SystemExit(main())
