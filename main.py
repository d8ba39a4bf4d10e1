# Run the registration race without installing the package:
#   python main.py --coldkey "..." --hotkey "..." --netuid 43 --slot 1 --slot_count 3
from dotenv import load_dotenv

load_dotenv()

from burn_register.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
