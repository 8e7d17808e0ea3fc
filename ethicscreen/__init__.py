"""EthicScreen: evidence-based ethical and religious-compliance screening."""
