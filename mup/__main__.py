from mup.cli.app import main

main()
