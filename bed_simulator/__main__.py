import sys

from bed_simulator.BedSimulator import main

if __name__ == "__main__":
    sys.exit(main())
