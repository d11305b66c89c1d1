"""Pure batch domain: schedule evaluation."""
