ANALYSIS_PREAMBLE = (
    "Here are the logs and events from a Kubernetes pod. "
    "Help me identify the issue and suggest a fix."
)

ANALYSIS_PROMPT = """{preamble}

Events:
{events}

Logs:
{logs}"""
