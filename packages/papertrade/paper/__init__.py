"""Paper trading: FIFO lot ledger, fill engine, trading state, reports.

Modules:
  rules.py        Order / Fill types, sides, intent validation
  ledger.py       Ledger: FIFO lots and realized P/L per instrument
  state.py        TradingState: injectable owner of ledger + logs
  fill_engine.py  FillEngine: intent -> quote -> ledger -> fill
  report.py       ReportQuery: time-windowed read-only view
"""
