"""Legacy HTML to portable text conversion."""
