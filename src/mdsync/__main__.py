from mdsync.server import main

main()
