from isobuild.core import main

main()
