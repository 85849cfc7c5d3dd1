from peer_dep_helper.cli import main

main()
