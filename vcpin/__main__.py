from vcpin.main import main

main()
