class BirthlinkError(Exception):
    """Domain failure that is reported back to the SMS sender."""


class CaseNotFoundError(BirthlinkError):
    def __init__(self, case_id: str):
        super().__init__(f"Help request not found: {case_id}")
        self.case_id = case_id


class InvalidTransitionError(BirthlinkError):
    def __init__(self, case_id: str, current: str, target: str):
        super().__init__(f"Case {case_id} is {current}, cannot move to {target}")
        self.case_id = case_id
        self.current = current
        self.target = target
