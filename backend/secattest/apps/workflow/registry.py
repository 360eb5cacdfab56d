from __future__ import annotations

# state -> {event: next_state}. A missing pair is an illegal transition and a
# state whose mapping is empty is terminal.
WORKFLOWS = {
    "training_session": {
        "transitions": {
            "curriculum-generating": {
                "curriculum-generated": "in-progress",
            },
            "in-progress": {
                "all-modules-scored": "evaluating",
                "session-abandoned": "abandoned",
            },
            "evaluating": {
                "evaluation-passed": "passed",
                "evaluation-failed": "failed",
                "evaluation-exhausted": "exhausted",
            },
            "failed": {
                "remediation-started": "in-remediation",
            },
            "in-remediation": {
                "remediation-modules-ready": "in-progress",
                "session-abandoned": "abandoned",
            },
            "passed": {},
            "exhausted": {},
            "abandoned": {},
        }
    },
    "training_module": {
        "transitions": {
            "locked": {
                "generate-content": "content-generating",
            },
            "content-generating": {
                "content-ready": "learning",
            },
            "learning": {
                "start-scenario": "scenario-active",
            },
            "scenario-active": {
                "scenarios-complete": "quiz-active",
            },
            "quiz-active": {
                "quiz-scored": "scored",
            },
            "scored": {},
        }
    },
}
