# ---- Real captured ANSI data from Claude Code sessions ----

# Real startup status bar (captured from PTY)
REAL_STATUS_BAR_ANSI = (
    "\x1b[34mclaude-instance-manager\x1b[1C\x1b[90m│\x1b[1C"
    "\x1b[32m⎇\x1b[1Cmain\x1b[1C⇡7\x1b[1C\x1b[90m│\x1b[1C"
    "\x1b[38;5;100mUsage:\x1b[1C32%\x1b[1C███▎░░░░░░\x1b[39m"
)

# Real /exit command styling
REAL_EXIT_ANSI = "\x1b[38;2;177;185;249m/exit\x1b[39m"

# Real startup sequence with terminal modes
REAL_STARTUP_ANSI = (
    "\x1b[?2026h\r\r\n"
    "\x1b[38;5;220m────────\x1b[39m\r\r\n"
    "\x1b[1C\x1b[1mAccessing\x1b[1Cworkspace:\x1b[22m\r\r\n"
)

# A full turn as the PTY delivers it: user echo, spinner, answer, tool call, prompt
REAL_TURN_ANSI = (
    "\x1b[38;5;153m❯\x1b[1CWhat\x1b[1Cis\x1b[1C2+2?\x1b[39m\r\r\n"
    "\x1b[38;5;174m✶\x1b[39m\x1b[1CActivating\x1b[1Csleeper\x1b[1Cagents…\r\r\n"
    "\x1b[97m⏺\x1b[39m\x1b[1CThe\x1b[1Canswer\x1b[1Cis\x1b[1C4.\r\r\n"
    "\x1b[97m⏺\x1b[39m\x1b[1C\x1b[1mBash\x1b[22m(echo\x1b[1Cok)\r\r\n"
    "\x1b[2m\x1b[1C\x1b[1C⎿\x1b[1C\x1b[1Cok\x1b[22m\r\r\n"
    "\x1b[97m⏺\x1b[39m\x1b[1CDone.\x1b[1CAnything\x1b[1Celse?\r\r\n"
    "❯\x1b[1C"
)
