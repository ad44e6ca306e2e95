from taskmark.cli import main

main()
