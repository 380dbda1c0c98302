"""
Backend applicativo BookMyCare (prenotazioni ambulatorio).

Struttura:
- config.py         : impostazioni da ambiente/.env e logging
- db.py             : engine e sessioni SQLAlchemy (Database)
- models.py         : modelli ORM e enum
- errors.py         : errori tipizzati di dominio
- security.py       : hash password (bcrypt) e token JWT
- notifications.py  : notifiche email (Gmail) e dispatcher best-effort
- services.py       : prenotazioni, transizioni di stato, viste per ruolo, statistiche, pagamenti
- auth_service.py   : registrazione, login, token Google
- doctor_service.py : anagrafica medici
- seed.py           : dati iniziali (admin, medici)
- context.py        : costruzione e chiusura esplicita delle dipendenze
- api_main.py       : API HTTP (FastAPI)
- cli.py            : CLI di amministrazione
"""
