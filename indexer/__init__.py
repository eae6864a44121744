"""Content model, keyword index and snapshot I/O for docforge."""
