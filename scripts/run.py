# scripts/run.py
from cadeploy.cli import main

if __name__ == "__main__":
    main()
