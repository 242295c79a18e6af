"""Terminal month view of local iCalendar files"""
