from zettelmem.cli import main

main()
