from taskmem.server import main

main()
