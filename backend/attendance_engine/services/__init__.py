"""Business services for attendance and deposits."""
