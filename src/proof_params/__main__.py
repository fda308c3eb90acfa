from proof_params import main

main()
