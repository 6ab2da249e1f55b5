from darkfactory.cli import main

main()
