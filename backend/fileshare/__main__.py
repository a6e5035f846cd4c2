"""Allow `python -m fileshare`."""
from fileshare import main

if __name__ == "__main__":
    main.run()
